"""Collision segments for whole TMX maps.

A map refers to its tilesets by first global id (gid), either inline or
through an external .tsx ``source``. Cell gids carry Tiled's flip flags in
their top bits; :meth:`MapSegments.segments_for_gid` strips them and flips
the tile's segments to match.
"""

from __future__ import annotations

import bisect
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import pytmx

from apps.slope_loader.errors import MalformedDescriptor
from apps.slope_loader.segments import Segment
from apps.slope_loader.tileset_loader import (
    LoaderOptions,
    PropertyOverlay,
    SlopeTilesetData,
    load_tileset,
    load_tileset_element,
)

logger = logging.getLogger(__name__)

FLIPPED_HORIZONTALLY = 0x80000000
FLIPPED_VERTICALLY = 0x40000000
FLIPPED_DIAGONALLY = 0x20000000
# Only meaningful for hexagonal maps; stripped but not applied.
ROTATED_HEXAGONAL_120 = 0x10000000
GID_MASK = ~(FLIPPED_HORIZONTALLY | FLIPPED_VERTICALLY | FLIPPED_DIAGONALLY | ROTATED_HEXAGONAL_120) & 0xFFFFFFFF


@dataclass(frozen=True)
class MapTileset:
    first_gid: int
    data: SlopeTilesetData

    @property
    def end_gid(self) -> int:
        """One past the last gid owned by this tileset."""
        return self.first_gid + self.data.info.tile_count

    def owns_gid(self, gid: int) -> bool:
        return self.first_gid <= gid < self.end_gid

    def to_local_id(self, gid: int) -> int:
        if not self.owns_gid(gid):
            raise ValueError(
                f"gid {gid} does not belong to tileset {self.data.info.name!r} "
                f"containing gids [{self.first_gid} {self.end_gid})"
            )
        return gid - self.first_gid


@dataclass
class MapSegments:
    path: Path
    tilesets: List[MapTileset]

    def tileset_for_gid(self, gid: int) -> Optional[MapTileset]:
        gid &= GID_MASK
        first_gids = [ts.first_gid for ts in self.tilesets]
        index = bisect.bisect_right(first_gids, gid) - 1
        if index < 0:
            return None
        tileset = self.tilesets[index]
        return tileset if tileset.owns_gid(gid) else None

    def segments_for_gid(self, gid: int) -> Tuple[Segment, ...]:
        """Segments for a raw cell gid, with its flip flags applied.

        Empty cells (gid 0) and gids no tileset owns have no segments.
        """
        tileset = self.tileset_for_gid(gid)
        if tileset is None:
            return ()
        segments = tileset.data.segments_for(tileset.to_local_id(gid & GID_MASK))
        horizontal = bool(gid & FLIPPED_HORIZONTALLY)
        vertical = bool(gid & FLIPPED_VERTICALLY)
        diagonal = bool(gid & FLIPPED_DIAGONALLY)
        if not (horizontal or vertical or diagonal):
            return segments
        return tuple(segment.flipped(horizontal, vertical, diagonal) for segment in segments)


def _load_map_xml(tmx_path: Path) -> ET.Element:
    try:
        root = ET.parse(tmx_path).getroot()
    except ET.ParseError as exc:
        raise MalformedDescriptor(f"Invalid TMX XML: {tmx_path}") from exc
    except OSError as exc:
        raise MalformedDescriptor(f"Cannot read TMX: {tmx_path}") from exc
    if root.tag != "map":
        raise MalformedDescriptor(f"Expected <map> root, found <{root.tag}>: {tmx_path}")
    return root


def _validate_with_pytmx(tmx_path: Path, tilesets: List[MapTileset]) -> None:
    try:
        tiled_map = pytmx.TiledMap(str(tmx_path))
    except Exception as exc:
        raise MalformedDescriptor(f"pytmx could not load {tmx_path}: {exc}") from exc

    expected = sorted(ts.first_gid for ts in tilesets)
    actual = sorted(int(ts.firstgid) for ts in tiled_map.tilesets)
    if expected != actual:
        raise MalformedDescriptor(f"Tileset first gids differ from pytmx ({expected} != {actual}): {tmx_path}")


def load_map_segments(
    tmx_path: Path,
    options: Optional[LoaderOptions] = None,
    overlay: Optional[PropertyOverlay] = None,
    validate: bool = True,
) -> MapSegments:
    tmx_path = Path(tmx_path).resolve()
    root = _load_map_xml(tmx_path)

    tilesets: List[MapTileset] = []
    for tileset_node in root.findall("tileset"):
        raw_gid = tileset_node.attrib.get("firstgid")
        try:
            first_gid = int(raw_gid) if raw_gid is not None else 1
        except ValueError as exc:
            raise MalformedDescriptor(f"Tileset firstgid {raw_gid!r} is not an integer: {tmx_path}") from exc

        source = tileset_node.attrib.get("source")
        if source:
            # External tilesets resolve relative to the map file.
            data = load_tileset(tmx_path.parent / source, options, overlay)
        else:
            data = load_tileset_element(tileset_node, tmx_path, options, overlay)
        tilesets.append(MapTileset(first_gid=first_gid, data=data))

    tilesets.sort(key=lambda ts: ts.first_gid)
    for prev, nxt in zip(tilesets, tilesets[1:]):
        if prev.first_gid == nxt.first_gid:
            raise MalformedDescriptor(
                f"Tilesets {prev.data.info.name!r} and {nxt.data.info.name!r} share firstgid {nxt.first_gid}: {tmx_path}"
            )
        if prev.end_gid > nxt.first_gid:
            raise MalformedDescriptor(
                f"Tilesets {prev.data.info.name!r} and {nxt.data.info.name!r} overlap in gid range: {tmx_path}"
            )

    if validate:
        _validate_with_pytmx(tmx_path, tilesets)

    logger.info("Loaded %d tilesets from %s", len(tilesets), tmx_path)
    return MapSegments(path=tmx_path, tilesets=tilesets)
