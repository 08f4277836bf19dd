"""Override loader/applier for tilesets.

Allows per-tile properties (including ``lines``) and categories to be patched
from a JSON sidecar without editing the TSX.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Set

from apps.slope_loader.errors import MalformedDescriptor
from apps.slope_loader.tileset_loader import PropertyOverlay, TileEntry

logger = logging.getLogger(__name__)

Overrides = Dict[str, dict]


def _expand_ids(id_entry) -> List[int]:
    # Accept single ints or [start, end] inclusive ranges
    if isinstance(id_entry, int):
        return [id_entry]
    if isinstance(id_entry, list) and len(id_entry) == 2:
        start, end = id_entry
        return list(range(int(start), int(end) + 1))
    logger.warning("Ignoring unrecognised tile id entry %r", id_entry)
    return []


def load_overrides(path: Path) -> Overrides:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise MalformedDescriptor(f"Invalid overrides JSON: {path}") from exc
    if not isinstance(data, dict):
        raise MalformedDescriptor(f"Overrides must be a JSON object keyed by tileset name: {path}")
    return data


def apply_overrides(
    tileset_name: str,
    tile_props: Dict[int, Dict[str, str]],
    overrides: Overrides,
) -> Dict[int, Dict[str, str]]:
    """Return a copy of ``tile_props`` with this tileset's overrides applied."""
    merged = {tid: dict(props) for tid, props in tile_props.items()}
    meta = overrides.get(tileset_name)
    if not meta:
        return merged
    if not isinstance(meta, dict):
        raise MalformedDescriptor(f"Overrides for tileset {tileset_name!r} must be a JSON object")

    # Build category mapping per tile id
    cats_by_id: Dict[int, Set[str]] = {}
    try:
        for cat in meta.get("categories", []):
            cat_name = cat.get("name")
            if not cat_name:
                continue
            for id_entry in cat.get("ids", []):
                for tid in _expand_ids(id_entry):
                    cats_by_id.setdefault(tid, set()).add(cat_name)
    except (ValueError, TypeError, AttributeError) as exc:
        raise MalformedDescriptor(f"Bad category overrides for tileset {tileset_name!r}") from exc

    try:
        props_by_id: Dict[int, Dict[str, str]] = {
            int(tid): {k: str(v) for k, v in props.items()}
            for tid, props in meta.get("properties", {}).items()
        }
    except (ValueError, TypeError, AttributeError) as exc:
        raise MalformedDescriptor(f"Bad property overrides for tileset {tileset_name!r}") from exc

    for tid, props in props_by_id.items():
        merged.setdefault(tid, {}).update(props)
    for tid, cats in cats_by_id.items():
        merged.setdefault(tid, {})["category"] = ",".join(sorted(cats))

    logger.info(
        "Applied overrides to %s: %d tiles patched, %d categorised",
        tileset_name,
        len(props_by_id),
        len(cats_by_id),
    )
    return merged


def make_overlay(overrides: Overrides) -> PropertyOverlay:
    """Wrap ``overrides`` for ``load_tileset(..., overlay=...)``."""

    def _overlay(tileset_name: str, tile_props: Dict[int, Dict[str, str]]) -> Dict[int, Dict[str, str]]:
        return apply_overrides(tileset_name, tile_props, overrides)

    return _overlay


def category_filter(category: str) -> Callable[[TileEntry], bool]:
    category_lower = category.lower()

    def _pred(tile: TileEntry) -> bool:
        cat_value = tile.properties.get("category", "")
        return any(part.strip().lower() == category_lower for part in cat_value.split(",")) if cat_value else False

    return _pred
