"""Command-line entry point for inspecting and fixing tileset collision data.

Usage examples (run from repo root):
    uv run slope-loader dump tests/data/tileset4.tsx

    uv run slope-loader check maps/*.tsx --strict

    uv run slope-loader migrate tests/data/tileset4.tsx --output tileset4_lines.tsx

Swap `uv run` for your interpreter's environment if you are not using uv.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from apps.slope_loader.errors import TilesetLoadError
from apps.slope_loader.overrides import load_overrides, make_overlay
from apps.slope_loader.tileset_loader import LoaderOptions, load_tileset
from apps.slope_loader.tsx_roundtrip import migrate_legacy_lines, round_trip

logger = logging.getLogger(__name__)


def _dump(args: argparse.Namespace) -> int:
    overlay = make_overlay(load_overrides(args.overrides)) if args.overrides else None
    data = load_tileset(args.input, overlay=overlay)

    if args.json:
        payload = {
            "name": data.info.name,
            "tiles": {
                str(tid): [[list(s.start), list(s.end)] for s in segments]
                for tid, segments in sorted(data.segments.items())
            },
        }
        print(json.dumps(payload, indent=2))
        return 0

    print(f"{data.info.name}: {len(data.segments)} of {data.info.tile_count} tiles have segments")
    for tid, segments in sorted(data.segments.items()):
        print(f"{tid:>5}  " + " ; ".join(segment.format() for segment in segments))
    return 0


def _check(args: argparse.Namespace) -> int:
    failed = False
    for path in args.inputs:
        try:
            data = load_tileset(path, LoaderOptions(strict_range=args.strict))
        except TilesetLoadError as exc:
            print(f"FAIL {path}: {exc}")
            failed = True
            continue
        if data.warnings and args.strict:
            failed = True
        status = "WARN" if data.warnings else "OK"
        print(f"{status} {path}: {len(data.segments)} tiles with segments, {len(data.warnings)} warnings")
    return 1 if failed else 0


def _migrate(args: argparse.Namespace) -> int:
    migrated: List[int] = []

    def transform(root) -> None:
        migrated.extend(migrate_legacy_lines(root))

    output = round_trip(args.input, args.output, transform)
    print(f"Wrote TSX to {output} ({len(migrated)} tiles migrated)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slope-loader", description="Tileset collision segment utility")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    dump = sub.add_parser("dump", help="Print the collision segments of each tile")
    dump.add_argument("input", type=Path, help="Path to a TSX tileset")
    dump.add_argument("--overrides", type=Path, default=None, help="Optional JSON overrides sidecar")
    dump.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    dump.set_defaults(func=_dump)

    check = sub.add_parser("check", help="Load tilesets and report problems")
    check.add_argument("inputs", nargs="+", type=Path, help="TSX tilesets to check")
    check.add_argument("--strict", action="store_true", help="Treat warnings as failures")
    check.set_defaults(func=_check)

    migrate = sub.add_parser("migrate", help="Write explicit lines for tiles using line-left/mid/right")
    migrate.add_argument("input", type=Path, help="Path to source TSX")
    migrate.add_argument(
        "--output", type=Path, default=None, help="Optional output path (defaults to in-place)"
    )
    migrate.set_defaults(func=_migrate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        return args.func(args)
    except TilesetLoadError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
