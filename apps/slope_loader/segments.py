"""Collision segment types and the property formats that encode them.

Tiles carry their collision edges either as one explicit ``lines`` property
(``"x0, y0 : x1, y1"`` pieces joined by ``;``) or as the older
``line-left`` / ``line-mid`` / ``line-right`` points, which are connected in
that order. Coordinates are fractions of the tile's width and height.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, NamedTuple, Optional, Tuple

import pygame

from apps.slope_loader.errors import MalformedSegment

LINES = "lines"
LINE_LEFT = "line-left"
LINE_MID = "line-mid"
LINE_RIGHT = "line-right"
LEGACY_KEYS = (LINE_LEFT, LINE_MID, LINE_RIGHT)

SEGMENT_SEPARATOR = ";"
POINT_SEPARATOR = ":"
COORD_SEPARATOR = ","


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Segment:
    start: Point
    end: Point

    def coordinates(self) -> Iterator[float]:
        yield from self.start
        yield from self.end

    def reversed(self) -> Segment:
        return Segment(self.end, self.start)

    def same_edge(self, other: Segment) -> bool:
        """True when both segments join the same two points, in either direction."""
        return sorted((self.start, self.end)) == sorted((other.start, other.end))

    def flipped(self, horizontal: bool = False, vertical: bool = False, diagonal: bool = False) -> Segment:
        # Tiled applies the diagonal flip first, then horizontal, then vertical.
        def _flip(p: Point) -> Point:
            x, y = p
            if diagonal:
                x, y = y, x
            if horizontal:
                x = 1.0 - x
            if vertical:
                y = 1.0 - y
            return Point(x, y)

        return Segment(_flip(self.start), _flip(self.end))

    def to_pixels(self, rect: pygame.Rect) -> Tuple[pygame.math.Vector2, pygame.math.Vector2]:
        """Map the segment onto the pixel area covered by ``rect``."""

        def _scale(p: Point) -> pygame.math.Vector2:
            return pygame.math.Vector2(rect.x + p.x * rect.width, rect.y + p.y * rect.height)

        return _scale(self.start), _scale(self.end)

    def format(self) -> str:
        return f"{_format_point(self.start)} {POINT_SEPARATOR} {_format_point(self.end)}"


def _format_number(value: float) -> str:
    # repr keeps the shortest text that parses back to the same float.
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _format_point(point: Point) -> str:
    return f"{_format_number(point.x)}{COORD_SEPARATOR} {_format_number(point.y)}"


def format_lines(segments: Iterable[Segment]) -> str:
    return SEGMENT_SEPARATOR.join(segment.format() for segment in segments)


def _to_float(text: str, tile_id: Optional[int], property_name: str, raw: str) -> float:
    # float() accepts digit grouping, which turns typos like "1_0" into 10.
    if "_" in text:
        raise MalformedSegment(f"not a number: {text.strip()!r}", tile_id, property_name, raw)
    try:
        value = float(text.strip())
    except ValueError as exc:
        raise MalformedSegment(f"not a number: {text.strip()!r}", tile_id, property_name, raw) from exc
    if not math.isfinite(value):
        raise MalformedSegment(f"coordinate is not finite: {text.strip()!r}", tile_id, property_name, raw)
    return value


def _parse_point(text: str, tile_id: Optional[int], property_name: str, raw: str) -> Point:
    x_text, sep, y_text = text.partition(COORD_SEPARATOR)
    if not sep:
        raise MalformedSegment(
            f"point {text.strip()!r} is missing {COORD_SEPARATOR!r}", tile_id, property_name, raw
        )
    return Point(
        _to_float(x_text, tile_id, property_name, raw),
        _to_float(y_text, tile_id, property_name, raw),
    )


def parse_point(text: str, tile_id: Optional[int] = None, property_name: str = LINE_LEFT) -> Point:
    """Parse a single ``"x, y"`` point, tolerating any whitespace."""
    return _parse_point(text, tile_id, property_name, text)


def _parse_segment(text: str, tile_id: Optional[int], property_name: str, raw: str) -> Segment:
    start_text, sep, end_text = text.partition(POINT_SEPARATOR)
    if not sep:
        raise MalformedSegment(
            f"segment {text.strip()!r} is missing {POINT_SEPARATOR!r}", tile_id, property_name, raw
        )
    return Segment(
        _parse_point(start_text, tile_id, property_name, raw),
        _parse_point(end_text, tile_id, property_name, raw),
    )


def parse_lines(text: str, tile_id: Optional[int] = None) -> Tuple[Segment, ...]:
    """Parse a ``lines`` value into segments, in source order."""
    pieces = [piece for piece in text.split(SEGMENT_SEPARATOR) if piece.strip()]
    if not pieces:
        raise MalformedSegment("no segments given", tile_id, LINES, text)
    return tuple(_parse_segment(piece, tile_id, LINES, text) for piece in pieces)


def synthesize_segments(properties: Mapping[str, str], tile_id: Optional[int] = None) -> Tuple[Segment, ...]:
    """Build segments from ``line-left``/``line-mid``/``line-right`` points.

    Returns an empty tuple when none of the three keys is present. Left and
    right are both required once any of them appears.
    """
    present = [key for key in LEGACY_KEYS if key in properties]
    if not present:
        return ()
    for key in (LINE_LEFT, LINE_RIGHT):
        if key not in properties:
            raise MalformedSegment(
                f"{key!r} is required alongside {', '.join(present)}",
                tile_id,
                present[0],
                properties[present[0]],
            )

    points = [_parse_point(properties[key], tile_id, key, properties[key]) for key in LEGACY_KEYS if key in properties]
    return tuple(Segment(a, b) for a, b in zip(points, points[1:]))


