"""Errors raised while loading tileset collision data."""

from __future__ import annotations

from typing import Optional


class TilesetLoadError(Exception):
    pass


class MalformedDescriptor(TilesetLoadError):
    """The descriptor is not well-formed XML or breaks the tileset schema."""


class MalformedSegment(TilesetLoadError):
    """A ``lines`` or ``line-*`` value could not be read as numeric point pairs."""

    def __init__(
        self,
        message: str,
        tile_id: Optional[int] = None,
        property_name: Optional[str] = None,
        raw: Optional[str] = None,
    ) -> None:
        self.tile_id = tile_id
        self.property_name = property_name
        self.raw = raw
        if tile_id is not None:
            message = f"tile {tile_id}: {message}"
        if property_name is not None:
            message = f"{message} ({property_name}={raw!r})"
        super().__init__(message)
