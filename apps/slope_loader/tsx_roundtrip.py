"""TSX round-trip helpers for collision data.

Reads a TSX, applies an optional edit (such as writing explicit ``lines``
for tiles that only have ``line-left``/``line-mid``/``line-right``), writes
it back, and re-loads it to ensure the file still parses.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, List, Optional

from apps.slope_loader.errors import MalformedDescriptor
from apps.slope_loader.segments import LEGACY_KEYS, LINES, format_lines, synthesize_segments
from apps.slope_loader.tileset_loader import load_tileset, parse_tile_properties

logger = logging.getLogger(__name__)


def _ensure_properties_element(node: ET.Element) -> ET.Element:
    properties = node.find("properties")
    if properties is None:
        properties = ET.SubElement(node, "properties")
    return properties


def _find_tile(root: ET.Element, tile_id: int) -> Optional[ET.Element]:
    for tile in root.findall("tile"):
        if tile.attrib.get("id") == str(tile_id):
            return tile
    return None


def set_tile_property(root: ET.Element, tile_id: int, key: str, value: str) -> None:
    """Add or replace a property on one tile of the TSX root element."""
    tile = _find_tile(root, tile_id)
    if tile is None:
        tile = ET.SubElement(root, "tile", id=str(tile_id))
    properties = _ensure_properties_element(tile)
    for prop in properties.findall("property"):
        if prop.attrib.get("name") == key:
            prop.attrib["value"] = value
            return
    ET.SubElement(properties, "property", name=key, value=value)


def migrate_legacy_lines(root: ET.Element) -> List[int]:
    """Write ``lines`` for every tile that only has the ``line-*`` points.

    Returns the ids of the migrated tiles.
    """
    migrated: List[int] = []
    for tile in root.findall("tile"):
        try:
            tile_id = int(tile.attrib["id"])
        except (KeyError, ValueError) as exc:
            raise MalformedDescriptor(f"Tile without a valid id: {tile.attrib}") from exc
        props = parse_tile_properties(tile, tile_id)
        if LINES in props or not any(key in props for key in LEGACY_KEYS):
            continue
        segments = synthesize_segments(props, tile_id)
        set_tile_property(root, tile_id, LINES, format_lines(segments))
        migrated.append(tile_id)
    logger.info("Migrated %d tiles to explicit lines", len(migrated))
    return migrated


def round_trip(
    input_path: Path,
    output_path: Optional[Path] = None,
    transform: Optional[Callable[[ET.Element], None]] = None,
) -> Path:
    # Keep the image source valid by defaulting relative outputs next to the input TSX.
    if output_path and not output_path.is_absolute():
        output_path = input_path.parent / output_path

    try:
        tree = ET.parse(input_path)
    except ET.ParseError as exc:
        raise MalformedDescriptor(f"Invalid TSX XML: {input_path}") from exc
    except OSError as exc:
        raise MalformedDescriptor(f"Cannot read TSX: {input_path}") from exc
    root = tree.getroot()

    if transform:
        transform(root)

    output = output_path or input_path
    ET.indent(tree, space=" ")
    try:
        tree.write(output, encoding="UTF-8", xml_declaration=True)
    except OSError as exc:
        raise MalformedDescriptor(f"Cannot write TSX: {output}") from exc

    # Validate the written file still loads.
    load_tileset(output)
    return output
