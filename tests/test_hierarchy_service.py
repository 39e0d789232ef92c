"""Tests for location and cost-group trees: parsing, get-or-create, depth and paths."""

import pytest
from sqlalchemy import func, select

from unified_index.core.app_config import AppConfig, set_app_config
from unified_index.db.models import CostGroup, Location
from unified_index.services import hierarchy_service
from unified_index.services.hierarchy_service import (
    HierarchyDepthError,
    HierarchyError,
    ParsedCostGroup,
    ParsedLocation,
)


# =============================================================================
# Tag parsing
# =============================================================================


def test_parse_location_tag_three_parts():
    assert hierarchy_service.parse_location_tag("O-Alpha-1-101") == ParsedLocation(
        building="Alpha", level="1", room="101"
    )


def test_parse_location_tag_two_parts_uses_default_level():
    parsed = hierarchy_service.parse_location_tag("O-Alpha-101")
    assert parsed == ParsedLocation(building="Alpha", level="Standard", room="101")


def test_parse_location_tag_room_only():
    assert hierarchy_service.parse_location_tag("O-101") == ParsedLocation(
        building=None, level=None, room="101"
    )


def test_parse_location_tag_prefix_is_case_insensitive_and_extra_segments_ignored():
    parsed = hierarchy_service.parse_location_tag("o-Alpha-1-101-east")
    assert parsed == ParsedLocation(building="Alpha", level="1", room="101")


@pytest.mark.parametrize("tag", ["Alpha-1-101", "O-", "O-Alpha--101", "O--1-101", None])
def test_parse_location_tag_rejects(tag):
    assert hierarchy_service.parse_location_tag(tag) is None


def test_parse_location_tag_uses_configured_prefix():
    set_app_config(AppConfig(version=1, location_prefix="LOC:"))
    assert hierarchy_service.parse_location_tag("LOC:B-2") == ParsedLocation(
        building="B", level="Standard", room="2"
    )
    assert hierarchy_service.parse_location_tag("O-B-2") is None


def test_parse_cost_group_tag():
    assert hierarchy_service.parse_cost_group_tag("KGR456 Doors") == ParsedCostGroup(456, "Doors")
    assert hierarchy_service.parse_cost_group_tag("kgr 310") == ParsedCostGroup(310, None)
    assert hierarchy_service.parse_cost_group_tag("KGR45 Doors") is None
    assert hierarchy_service.parse_cost_group_tag("KGR099 Misc") is None
    assert hierarchy_service.parse_cost_group_tag("Doors") is None


def test_parse_cost_group_tag_tries_prefixes_in_order():
    assert hierarchy_service.parse_cost_group_tag("CG420 Walls", prefixes=("KGR", "CG")) == ParsedCostGroup(
        420, "Walls"
    )


def test_parent_cost_group_code():
    assert hierarchy_service.parent_cost_group_code(456) == 450
    assert hierarchy_service.parent_cost_group_code(450) == 400
    assert hierarchy_service.parent_cost_group_code(400) is None


@pytest.mark.parametrize(
    "value,expected",
    [
        ("4", (400, 499)),
        ("45", (450, 459)),
        ("400", (400, 499)),
        ("450", (450, 459)),
        ("456", (456, 456)),
        ("4567", None),
        ("abc", None),
        ("", None),
    ],
)
def test_compute_cost_group_range(value, expected):
    assert hierarchy_service.compute_cost_group_range(value) == expected


# =============================================================================
# Cost groups
# =============================================================================


def test_get_or_create_cost_group_creates_ancestors(db):
    node = hierarchy_service.get_or_create_cost_group(db, 456, "Doors")

    codes = {cg.code: cg for cg in db.execute(select(CostGroup)).scalars()}
    assert set(codes) == {400, 450, 456}
    assert codes[400].depth == 0 and codes[400].parent_id is None
    assert codes[450].depth == 1 and codes[450].parent_id == codes[400].id
    assert node.depth == 2 and node.parent_id == codes[450].id
    assert node.path == "400.450.456"
    assert node.search_text == "400 / 450 / 456 Doors"


def test_get_or_create_cost_group_is_idempotent(db):
    first = hierarchy_service.get_or_create_cost_group(db, 456, "Doors")
    second = hierarchy_service.get_or_create_cost_group(db, 456, "Renamed")

    assert first.id == second.id
    assert second.name == "Doors"
    assert db.execute(select(func.count()).select_from(CostGroup)).scalar_one() == 3


def test_get_or_create_cost_group_rejects_out_of_range(db):
    with pytest.raises(HierarchyError):
        hierarchy_service.get_or_create_cost_group(db, 99)


def test_rename_cost_group_updates_subtree(db):
    leaf = hierarchy_service.get_or_create_cost_group(db, 456, "Doors")
    root = hierarchy_service.get_cost_group_by_code(db, 400)

    hierarchy_service.rename_cost_group(db, root.id, "Structure")

    db.refresh(leaf)
    assert leaf.search_text == "400 Structure / 450 / 456 Doors"


# =============================================================================
# Locations
# =============================================================================


def test_get_or_create_location_builds_tree(db):
    room = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    level = room.parent
    building = level.parent

    assert (building.type, building.depth) == ("building", 0)
    assert (level.type, level.depth) == ("level", 1)
    assert (room.type, room.depth) == ("room", 2)
    assert room.path == f"{building.id}.{level.id}.{room.id}"
    assert room.search_text == "Alpha / 1 / 101"


def test_get_or_create_location_is_idempotent(db):
    first = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    second = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    other = hierarchy_service.get_or_create_location(db, "Alpha", "2", "101")

    assert first.id == second.id
    assert other.id != first.id
    # Alpha, levels 1 and 2, two rooms
    assert db.execute(select(func.count()).select_from(Location)).scalar_one() == 5


def test_room_only_location_keeps_room_depth(db):
    room = hierarchy_service.get_or_create_location(db, None, None, "Lobby")

    assert room.parent_id is None
    assert room.depth == 2
    assert room.path == str(room.id)


def test_validate_depth_rejects_mismatched_parent():
    level = Location(id=1, name="1", type="level", depth=1)
    room = Location(id=2, name="101", type="room", depth=1, parent_id=1)

    with pytest.raises(HierarchyDepthError):
        hierarchy_service.validate_depth(room, level)


def test_validate_depth_rejects_wrong_type_depth():
    with pytest.raises(HierarchyDepthError):
        hierarchy_service.validate_depth(Location(name="Alpha", type="building", depth=1), None)


def test_find_location_ids_by_search_includes_descendants(db):
    room = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    unrelated = hierarchy_service.get_or_create_location(db, "Beta", "1", "201")

    ids = hierarchy_service.find_location_ids_by_search(db, "alpha")

    assert room.id in ids
    assert room.parent_id in ids
    assert unrelated.id not in ids
    assert hierarchy_service.find_location_ids_by_search(db, "   ") == []


def test_rename_location_refreshes_descendant_paths(db):
    room = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    building_id = room.parent.parent_id

    hierarchy_service.rename_location(db, building_id, "Gamma")

    db.refresh(room)
    assert room.search_text == "Gamma / 1 / 101"
    assert hierarchy_service.find_location_ids_by_search(db, "Gamma / 1")


def test_ancestor_ids_uses_location_paths(db):
    room = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    cost_group = hierarchy_service.get_or_create_cost_group(db, 456)

    assert hierarchy_service.ancestor_ids([room]) == sorted(room.path_ids)
    assert hierarchy_service.ancestor_ids([cost_group]) == [cost_group.id]
