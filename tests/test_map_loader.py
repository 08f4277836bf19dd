"""Tests for apps.slope_loader.map_loader."""

import shutil

import pytest

from apps.slope_loader.errors import MalformedDescriptor
from apps.slope_loader.map_loader import (
    FLIPPED_DIAGONALLY,
    FLIPPED_HORIZONTALLY,
    FLIPPED_VERTICALLY,
    MapTileset,
    load_map_segments,
)
from apps.slope_loader.segments import Point, Segment
from apps.slope_loader.tileset_loader import load_tileset

MAP_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<map version="1.10" tiledversion="1.10.2" orientation="orthogonal" renderorder="right-down" width="2" height="1" tilewidth="16" tileheight="16" infinite="0" nextlayerid="2" nextobjectid="1">
 <tileset firstgid="1" source="tileset4.tsx"/>
 <tileset firstgid="{extra_gid}" name="extra" tilewidth="16" tileheight="16" tilecount="4" columns="2">
  <image source="extra.png" width="32" height="32"/>
  <tile id="1">
   <properties>
    <property name="lines" value="0,0:1,1"/>
   </properties>
  </tile>
 </tileset>
 <layer id="1" name="ground" width="2" height="1">
  <data encoding="csv">
58,258
</data>
 </layer>
</map>
"""


@pytest.fixture
def make_map(tmp_path, tileset4_path):
    shutil.copy(tileset4_path, tmp_path / "tileset4.tsx")

    def _make(extra_gid: int = 257):
        path = tmp_path / "level.tmx"
        path.write_text(MAP_TEMPLATE.format(extra_gid=extra_gid), encoding="utf-8")
        return path

    return _make


class TestMapSegments:
    def test_tilesets_in_gid_order(self, make_map):
        segments = load_map_segments(make_map(), validate=False)
        assert [(ts.first_gid, ts.end_gid) for ts in segments.tilesets] == [(1, 257), (257, 261)]
        assert [ts.data.info.name for ts in segments.tilesets] == ["tileset4", "extra"]

    def test_external_tileset_gid(self, make_map):
        segments = load_map_segments(make_map(), validate=False)
        assert segments.segments_for_gid(58) == (
            Segment(Point(0, 0), Point(1, 0)),
            Segment(Point(1, 0), Point(1, 1)),
        )

    def test_inline_tileset_gid(self, make_map):
        segments = load_map_segments(make_map(), validate=False)
        assert segments.segments_for_gid(258) == (Segment(Point(0, 0), Point(1, 1)),)

    def test_empty_and_unknown_gids(self, make_map):
        segments = load_map_segments(make_map(), validate=False)
        assert segments.segments_for_gid(0) == ()
        assert segments.segments_for_gid(1) == ()
        assert segments.segments_for_gid(400) == ()
        assert segments.tileset_for_gid(400) is None

    def test_flip_flags(self, make_map):
        segments = load_map_segments(make_map(), validate=False)
        assert segments.segments_for_gid(58 | FLIPPED_HORIZONTALLY) == (
            Segment(Point(1, 0), Point(0, 0)),
            Segment(Point(0, 0), Point(0, 1)),
        )
        assert segments.segments_for_gid(258 | FLIPPED_VERTICALLY) == (Segment(Point(0, 1), Point(1, 0)),)
        assert segments.segments_for_gid(258 | FLIPPED_DIAGONALLY) == (Segment(Point(0, 0), Point(1, 1)),)
        assert segments.tileset_for_gid(58 | FLIPPED_HORIZONTALLY).data.info.name == "tileset4"

    def test_overlapping_tilesets(self, make_map):
        with pytest.raises(MalformedDescriptor):
            load_map_segments(make_map(extra_gid=200), validate=False)

    def test_missing_external_tileset(self, make_map, tmp_path):
        path = make_map()
        (tmp_path / "tileset4.tsx").unlink()
        with pytest.raises(MalformedDescriptor):
            load_map_segments(path, validate=False)

    def test_not_a_map(self, tileset4_path):
        with pytest.raises(MalformedDescriptor):
            load_map_segments(tileset4_path, validate=False)

    def test_shared_firstgid(self, tmp_path):
        path = tmp_path / "empty.tmx"
        path.write_text(
            '<map width="1" height="1" tilewidth="16" tileheight="16">'
            '<tileset firstgid="1" name="a" tilewidth="16" tileheight="16"/>'
            '<tileset firstgid="1" name="b" tilewidth="16" tileheight="16"/>'
            "</map>",
            encoding="utf-8",
        )
        with pytest.raises(MalformedDescriptor, match="share firstgid"):
            load_map_segments(path, validate=False)

    def test_validates_with_pytmx(self, make_map):
        segments = load_map_segments(make_map(), validate=True)
        assert len(segments.tilesets) == 2


def test_map_tileset_local_ids(tileset4_path):
    ts = MapTileset(first_gid=10, data=load_tileset(tileset4_path))
    assert ts.to_local_id(10) == 0
    assert ts.to_local_id(265) == 255
    assert not ts.owns_gid(266)
    with pytest.raises(ValueError):
        ts.to_local_id(9)
