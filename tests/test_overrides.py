"""Tests for apps.slope_loader.overrides."""

import json

import pytest

from apps.slope_loader.errors import MalformedDescriptor
from apps.slope_loader.overrides import (
    _expand_ids,
    apply_overrides,
    category_filter,
    load_overrides,
    make_overlay,
)
from apps.slope_loader.segments import Point, Segment
from apps.slope_loader.tileset_loader import load_tileset


@pytest.fixture
def overrides_file(tmp_path):
    data = {
        "tileset4": {
            "properties": {
                "0": {"lines": "0, 1 : 1, 1"},
                "187": {"lines": "0, 0.75 : 1, 0.9"},
            },
            "categories": [
                {"name": "Slope", "ids": [[184, 187], 238]},
                {"name": "ramp", "ids": [187]},
                {"ids": [1]},
            ],
        },
        "unused": {"properties": {"3": {"lines": "0,0:1,1"}}},
    }
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_expand_ids():
    assert _expand_ids(4) == [4]
    assert _expand_ids([2, 5]) == [2, 3, 4, 5]
    assert _expand_ids("x") == []


def test_load_missing_file(tmp_path):
    assert load_overrides(tmp_path / "none.json") == {}


def test_load_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{", encoding="utf-8")
    with pytest.raises(MalformedDescriptor):
        load_overrides(path)


def test_load_non_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(MalformedDescriptor):
        load_overrides(path)


def test_apply_does_not_mutate_input():
    props = {1: {"lines": "0,0:1,1"}}
    merged = apply_overrides("t", props, {"t": {"properties": {"1": {"lines": "0,1:1,1"}}}})
    assert props[1]["lines"] == "0,0:1,1"
    assert merged[1]["lines"] == "0,1:1,1"


def test_apply_unknown_tileset_is_noop():
    props = {1: {"a": "b"}}
    assert apply_overrides("other", props, {"t": {}}) == props


def test_overlay_changes_segments(tileset4_path, overrides_file):
    data = load_tileset(tileset4_path, overlay=make_overlay(load_overrides(overrides_file)))
    assert data.segments[0] == (Segment(Point(0, 1), Point(1, 1)),)
    assert data.segments[187] == (Segment(Point(0, 0.75), Point(1, 0.9)),)
    tile_187 = next(t for t in data.tiles if t.local_id == 187)
    assert tile_187.properties["category"] == "Slope,ramp"


def test_category_filter(tileset4_path, overrides_file):
    data = load_tileset(tileset4_path, overlay=make_overlay(load_overrides(overrides_file)))
    slopes = [t.local_id for t in data.tiles if category_filter("slope")(t)]
    assert slopes == [184, 185, 186, 187, 238]
    assert [t.local_id for t in data.tiles if category_filter("RAMP")(t)] == [187]


@pytest.mark.parametrize(
    "meta",
    [
        {"categories": ["Slope"]},
        {"categories": [{"name": "Slope", "ids": [[1, "a"]]}]},
        {"categories": [{"name": "Slope", "ids": 5}]},
        {"properties": {"1": "lines"}},
        {"properties": {"one": {"lines": "0,0:1,1"}}},
        "not an object",
    ],
)
def test_malformed_overrides_raise(meta):
    with pytest.raises(MalformedDescriptor):
        apply_overrides("t", {}, {"t": meta})
