"""Tileset loader for slope and collision-edge data.

Parses .tsx tilesets, validates basic metadata, and resolves the per-tile
``lines`` / ``line-*`` properties into collision segments keyed by tile id.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import pygame

from apps.slope_loader.errors import MalformedDescriptor, MalformedSegment
from apps.slope_loader.segments import (
    LEGACY_KEYS,
    LINES,
    Segment,
    parse_lines,
    synthesize_segments,
)

logger = logging.getLogger(__name__)

PropertyOverlay = Callable[[str, Dict[int, Dict[str, str]]], Dict[int, Dict[str, str]]]


@dataclass(frozen=True)
class LoaderOptions:
    coordinate_min: float = 0.0
    coordinate_max: float = 1.0
    max_segments: int = 2
    # Warn when both encodings are present but describe different edges.
    cross_check: bool = True
    # Raise MalformedSegment on out-of-range coordinates instead of warning.
    strict_range: bool = False


@dataclass(frozen=True)
class TilesetInfo:
    name: str
    path: Path
    image_path: Optional[Path]
    image_width: int
    image_height: int
    tile_width: int
    tile_height: int
    margin: int
    spacing: int
    columns: int
    tile_count: int

    @property
    def rows(self) -> int:
        return self.tile_count // self.columns if self.columns else 0

    def texture_rect(self, local_id: int) -> pygame.Rect:
        """Pixel rectangle of ``local_id`` inside the tileset image."""
        if not 0 <= local_id < self.tile_count:
            raise IndexError(f"Tile id {local_id} outside tileset {self.name!r} (0..{self.tile_count - 1})")
        col = local_id % self.columns
        row = local_id // self.columns
        x = self.margin + col * (self.tile_width + self.spacing)
        y = self.margin + row * (self.tile_height + self.spacing)
        return pygame.Rect(x, y, self.tile_width, self.tile_height)


@dataclass(frozen=True)
class TileEntry:
    tileset_name: str
    local_id: int
    # Read-only view; overlays work on copies before entries are built.
    properties: Mapping[str, str]
    type: str = ""


@dataclass
class SlopeTilesetData:
    info: TilesetInfo
    tiles: List[TileEntry]
    segments: Dict[int, Tuple[Segment, ...]]
    warnings: List[str] = field(default_factory=list)

    def segments_for(self, local_id: int) -> Tuple[Segment, ...]:
        return self.segments.get(local_id, ())


def parse_tile_properties(node: ET.Element, tile_id: int) -> Dict[str, str]:
    props: Dict[str, str] = {}
    for props_node in node.findall("properties"):
        for prop in props_node.findall("property"):
            name = prop.attrib.get("name")
            if not name:
                raise MalformedDescriptor(f"Tile {tile_id} has a property without a name")
            # Multi-line string properties keep their value as element text.
            value = prop.attrib.get("value")
            if value is None:
                value = prop.text or ""
            props[name] = value
    return props


def _load_tileset_xml(tsx_path: Path) -> ET.Element:
    try:
        tree = ET.parse(tsx_path)
    except ET.ParseError as exc:
        raise MalformedDescriptor(f"Invalid TSX XML: {tsx_path}") from exc
    except OSError as exc:
        raise MalformedDescriptor(f"Cannot read TSX: {tsx_path}") from exc
    return tree.getroot()


def _int_attribute(node: ET.Element, key: str, default: Optional[int] = None) -> int:
    raw = node.attrib.get(key)
    if raw is None:
        if default is None:
            raise MalformedDescriptor(f"<{node.tag}> is missing required attribute {key!r}")
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise MalformedDescriptor(f"<{node.tag}> attribute {key}={raw!r} is not an integer") from exc


class _WarningSink:
    def __init__(self, tileset_name: str) -> None:
        self.tileset_name = tileset_name
        self.messages: List[str] = []

    def __call__(self, message: str, *args) -> None:
        text = message % args if args else message
        logger.warning("%s: %s", self.tileset_name, text)
        self.messages.append(text)


def _check_range(
    tile_id: int,
    segments: Tuple[Segment, ...],
    options: LoaderOptions,
    warn: Callable[..., None],
    source: str = LINES,
) -> None:
    for segment in segments:
        bad = [v for v in segment.coordinates() if not options.coordinate_min <= v <= options.coordinate_max]
        if not bad:
            continue
        if options.strict_range:
            raise MalformedSegment(
                f"coordinate {bad[0]:g} outside [{options.coordinate_min:g}, {options.coordinate_max:g}]",
                tile_id,
                source,
                segment.format(),
            )
        warn(
            "tile %d: segment %s has coordinates outside [%g, %g]",
            tile_id,
            segment.format(),
            options.coordinate_min,
            options.coordinate_max,
        )


def resolve_segments(
    tile_id: int,
    properties: Mapping[str, str],
    options: Optional[LoaderOptions] = None,
    warn: Optional[Callable[..., None]] = None,
) -> Tuple[Segment, ...]:
    """Resolve one tile's collision segments from its properties.

    ``lines`` wins over the ``line-*`` points when both are present.
    """
    options = options or LoaderOptions()
    sink = warn if warn is not None else _WarningSink("tile properties")

    if LINES in properties:
        source = LINES
        segments = parse_lines(properties[LINES], tile_id)
        if options.cross_check:
            try:
                legacy = synthesize_segments(properties, tile_id)
            except MalformedSegment as exc:
                sink("tile %d: ignoring unreadable line-* points (%s)", tile_id, exc)
                legacy = ()
            if legacy and not _same_edges(segments, legacy):
                sink("tile %d: %r disagrees with line-left/line-mid/line-right, using %r", tile_id, LINES, LINES)
    else:
        source = "/".join(key for key in LEGACY_KEYS if key in properties)
        segments = synthesize_segments(properties, tile_id)

    if len(segments) > options.max_segments:
        sink("tile %d: %d segments, expected at most %d", tile_id, len(segments), options.max_segments)
    _check_range(tile_id, segments, options, sink, source)
    return segments


def _same_edges(a: Tuple[Segment, ...], b: Tuple[Segment, ...]) -> bool:
    if len(a) != len(b):
        return False
    remaining = list(b)
    for segment in a:
        match = next((other for other in remaining if segment.same_edge(other)), None)
        if match is None:
            return False
        remaining.remove(match)
    return True


def _read_info(root: ET.Element, tsx_path: Path) -> TilesetInfo:
    if root.tag != "tileset":
        raise MalformedDescriptor(f"Expected <tileset> root, found <{root.tag}>: {tsx_path}")

    name = root.attrib.get("name", tsx_path.stem)
    tile_width = _int_attribute(root, "tilewidth")
    tile_height = _int_attribute(root, "tileheight")
    margin = _int_attribute(root, "margin", 0)
    spacing = _int_attribute(root, "spacing", 0)
    if tile_width <= 0 or tile_height <= 0:
        raise MalformedDescriptor(f"Tile size must be positive in {tsx_path}")

    image_path: Optional[Path] = None
    image_width = image_height = 0
    image_node = root.find("image")
    if image_node is not None:
        image_source = image_node.attrib.get("source")
        if not image_source:
            raise MalformedDescriptor(f"Tileset image source missing: {tsx_path}")
        image_path = (tsx_path.parent / image_source).resolve()
        image_width = _int_attribute(image_node, "width", 0)
        image_height = _int_attribute(image_node, "height", 0)

    columns = _int_attribute(root, "columns", 0)
    if columns <= 0 and image_width:
        columns = max(1, (image_width - 2 * margin + spacing) // (tile_width + spacing))
    columns = max(1, columns)

    tile_count = _int_attribute(root, "tilecount", 0)
    if tile_count == 0 and image_height:
        # Derive tile count from image if not specified
        rows = max(1, (image_height - 2 * margin + spacing) // (tile_height + spacing))
        tile_count = columns * rows

    if tile_count % columns != 0:
        raise MalformedDescriptor(
            f"tilecount {tile_count} is not a whole number of rows of {columns} columns: {tsx_path}"
        )

    return TilesetInfo(
        name=name,
        path=tsx_path,
        image_path=image_path,
        image_width=image_width,
        image_height=image_height,
        tile_width=tile_width,
        tile_height=tile_height,
        margin=margin,
        spacing=spacing,
        columns=columns,
        tile_count=tile_count,
    )


def load_tileset_element(
    root: ET.Element,
    tsx_path: Path,
    options: Optional[LoaderOptions] = None,
    overlay: Optional[PropertyOverlay] = None,
) -> SlopeTilesetData:
    """Load from an already parsed ``<tileset>`` element.

    ``tsx_path`` is used to name the tileset and to resolve the image path.
    """
    options = options or LoaderOptions()
    info = _read_info(root, tsx_path)
    warn = _WarningSink(info.name)

    tile_props: Dict[int, Dict[str, str]] = {}
    tile_types: Dict[int, str] = {}
    for tile_node in root.findall("tile"):
        tid = _int_attribute(tile_node, "id")
        if tid < 0:
            raise MalformedDescriptor(f"Negative tile id {tid} in {tsx_path}")
        if tid in tile_props:
            raise MalformedDescriptor(f"Duplicate tile id {tid} in {tsx_path}")
        if info.tile_count and tid >= info.tile_count:
            warn("tile %d is beyond tilecount %d", tid, info.tile_count)
        tile_props[tid] = parse_tile_properties(tile_node, tid)
        # Tiled 1.9 renamed "type" to "class".
        tile_types[tid] = tile_node.attrib.get("type", tile_node.attrib.get("class", ""))

    if overlay is not None:
        tile_props = overlay(info.name, tile_props)

    tiles = [
        TileEntry(
            tileset_name=info.name,
            local_id=tid,
            properties=MappingProxyType(dict(props)),
            type=tile_types.get(tid, ""),
        )
        for tid, props in sorted(tile_props.items())
    ]

    segments: Dict[int, Tuple[Segment, ...]] = {}
    for tile in tiles:
        resolved = resolve_segments(tile.local_id, tile.properties, options, warn)
        if resolved:
            segments[tile.local_id] = resolved

    logger.debug("Loaded %d tiles, %d with collision segments, from %s", len(tiles), len(segments), tsx_path)
    return SlopeTilesetData(info=info, tiles=tiles, segments=segments, warnings=warn.messages)


def load_tileset(
    tsx_path: Path,
    options: Optional[LoaderOptions] = None,
    overlay: Optional[PropertyOverlay] = None,
) -> SlopeTilesetData:
    tsx_path = Path(tsx_path).resolve()
    root = _load_tileset_xml(tsx_path)
    return load_tileset_element(root, tsx_path, options, overlay)


def load_segments(tsx_path: Path, options: Optional[LoaderOptions] = None) -> Dict[int, Tuple[Segment, ...]]:
    """Map each annotated tile id to its collision segments.

    Tiles without segment data have no entry.
    """
    return load_tileset(tsx_path, options).segments


def load_tilesets(
    tsx_paths: List[Path],
    options: Optional[LoaderOptions] = None,
    overlay: Optional[PropertyOverlay] = None,
) -> Dict[str, SlopeTilesetData]:
    cache: Dict[str, SlopeTilesetData] = {}
    for tsx_path in tsx_paths:
        data = load_tileset(tsx_path, options, overlay)
        cache[data.info.name] = data
    return cache


def discover_tilesets(root: Path) -> List[Path]:
    if not root.exists():
        return []
    return sorted(root.rglob("*.tsx"))


def tiles_with_property(data: SlopeTilesetData, key: str, value: Optional[str] = None) -> List[TileEntry]:
    """Tiles carrying ``key``, optionally restricted to an exact ``value``."""

    def _pred(tile: TileEntry) -> bool:
        if key not in tile.properties:
            return False
        if value is None:
            return True
        return tile.properties.get(key) == value

    return [tile for tile in data.tiles if _pred(tile)]


def legacy_only_tiles(data: SlopeTilesetData) -> List[TileEntry]:
    """Tiles whose segments come only from the ``line-*`` points."""
    return [
        tile
        for tile in data.tiles
        if LINES not in tile.properties and any(key in tile.properties for key in LEGACY_KEYS)
    ]
