"""Shared test fixtures."""

from pathlib import Path

import pytest

DATA_DIR = Path(__file__).resolve().parent / "data"

TSX_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<tileset name="{name}" tilewidth="16" tileheight="16" tilecount="{tilecount}" columns="{columns}">\n'
    ' <image source="{name}.png" width="{width}" height="{height}"/>\n'
)


@pytest.fixture
def tileset4_path():
    """The shipped 256-tile slope tileset."""
    return DATA_DIR / "tileset4.tsx"


@pytest.fixture
def make_tsx(tmp_path):
    """Write a small 4x4 tileset whose <tile> elements are given as raw XML."""

    def _make(tiles_xml: str = "", name: str = "test", tilecount: int = 16, columns: int = 4) -> Path:
        header = TSX_HEADER.format(
            name=name,
            tilecount=tilecount,
            columns=columns,
            width=columns * 16,
            height=(tilecount // max(columns, 1)) * 16,
        )
        path = tmp_path / f"{name}.tsx"
        path.write_text(header + tiles_xml + "</tileset>\n", encoding="utf-8")
        return path

    return _make


@pytest.fixture
def lines_tile():
    """Raw XML for a tile carrying a single ``lines`` property."""

    def _tile(tile_id: int, value: str) -> str:
        return (
            f' <tile id="{tile_id}">\n'
            "  <properties>\n"
            f'   <property name="lines" value="{value}"/>\n'
            "  </properties>\n"
            " </tile>\n"
        )

    return _tile
