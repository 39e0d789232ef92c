"""Hierarchy service - location and cost-group trees.

Provides:
- Tag parsing (location tags, cost-group tags)
- Idempotent get-or-create with recursive parent creation
- Depth validation at write time
- Materialized path / search text maintenance, including subtree
  invalidation when an ancestor is renamed
- Search helpers used by the query engine and autocomplete
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from unified_index.core.app_config import get_app_config
from unified_index.db.enums import LocationType
from unified_index.db.models import CostGroup, Location
from unified_index.utils.normalization import escape_like_string, normalize_search_text

logger = logging.getLogger(__name__)

DEFAULT_LEVEL_NAME = "Standard"
MIN_COST_GROUP_CODE = 100
MAX_COST_GROUP_CODE = 999

Node = TypeVar("Node", Location, CostGroup)


# =============================================================================
# Exceptions
# =============================================================================


class HierarchyError(Exception):
    """Base exception for hierarchy operations."""

    pass


class HierarchyDepthError(HierarchyError):
    """A node's depth does not match its parent (permanent, never retried)."""

    pass


class HierarchyNodeNotFoundError(HierarchyError):
    """Node does not exist."""

    pass


# =============================================================================
# Parsing
# =============================================================================


@dataclass(frozen=True)
class ParsedLocation:
    """Location tag split into hierarchy levels; building/level are None for room-only tags."""

    building: str | None
    level: str | None
    room: str


@dataclass(frozen=True)
class ParsedCostGroup:
    code: int
    name: str | None


def parse_location_tag(tag: str | None, prefix: str | None = None) -> ParsedLocation | None:
    """
    Parse ``<prefix><room>``, ``<prefix><building>-<room>`` or
    ``<prefix><building>-<level>-<room>``.

    The prefix match is case-insensitive. Segments beyond the third are
    ignored. Non-matching tags return None.
    """
    prefix = prefix or get_app_config().location_prefix
    if not tag or not tag.lower().startswith(prefix.lower()):
        return None
    remainder = tag[len(prefix):]
    if not remainder.strip():
        return None

    parts = [part.strip() for part in remainder.split("-")]
    if len(parts) == 1:
        parsed = ParsedLocation(building=None, level=None, room=parts[0])
    elif len(parts) == 2:
        parsed = ParsedLocation(building=parts[0], level=DEFAULT_LEVEL_NAME, room=parts[1])
    else:
        parsed = ParsedLocation(building=parts[0], level=parts[1], room=parts[2])

    if not parsed.room or parsed.building == "" or parsed.level == "":
        return None
    return parsed


def parse_cost_group_tag(
    tag: str | None,
    prefixes: Sequence[str] | None = None,
) -> ParsedCostGroup | None:
    """
    Match ``<prefix><3 digits><optional name>`` against each prefix in order.

    The first matching prefix wins. Codes outside the valid range are not
    cost-group tags.
    """
    if not tag:
        return None
    prefixes = prefixes if prefixes is not None else get_app_config().cost_group_prefixes
    for prefix in prefixes:
        if not prefix:
            continue
        match = re.match(rf"^{re.escape(prefix)}\s*(\d{{3}})\s*(.*)$", tag, re.IGNORECASE | re.DOTALL)
        if match:
            code = int(match.group(1))
            if not MIN_COST_GROUP_CODE <= code <= MAX_COST_GROUP_CODE:
                return None
            return ParsedCostGroup(code=code, name=match.group(2).strip() or None)
    return None


def parent_cost_group_code(code: int) -> int | None:
    """456 -> 450, 450 -> 400, 400 -> None."""
    if code % 10 != 0:
        return (code // 10) * 10
    if code % 100 != 0:
        return (code // 100) * 100
    return None


def compute_cost_group_range(value: str | None) -> tuple[int, int] | None:
    """
    Translate a cost-code filter into an inclusive code range.

    3 digits: x00 -> x00..x99, xy0 -> xy0..xy9, otherwise exact.
    2 digits -> xy0..xy9. 1 digit -> x00..x99.
    Anything else returns None (filter disabled).
    """
    text = (value or "").strip()
    if not text.isdigit() or not 1 <= len(text) <= 3:
        return None
    number = int(text)
    if len(text) == 3:
        if number % 100 == 0:
            return number, number + 99
        if number % 10 == 0:
            return number, number + 9
        return number, number
    if len(text) == 2:
        return number * 10, number * 10 + 9
    return number * 100, number * 100 + 99


# =============================================================================
# Path maintenance and validation
# =============================================================================


def validate_depth(node: Node, parent: Node | None) -> None:
    """
    Reject a node whose depth is not ``parent.depth + 1``.

    Locations must also sit at the depth fixed by their type (a parentless
    room is still depth 2); parentless cost groups are roots at depth 0.
    """
    if parent is not None and node.depth != parent.depth + 1:
        raise HierarchyDepthError(
            f"{type(node).__name__} depth {node.depth} does not match parent depth {parent.depth}"
        )
    if isinstance(node, Location):
        type_depth = LocationType(node.type).depth
        if node.depth != type_depth:
            raise HierarchyDepthError(
                f"Location of type {node.type} must have depth {type_depth}, got {node.depth}"
            )
    elif parent is None and node.depth != 0:
        raise HierarchyDepthError(f"Root cost group must have depth 0, got {node.depth}")


def _node_path_token(node: Node) -> str:
    return str(node.code) if isinstance(node, CostGroup) else str(node.id)


def _node_label(node: Node) -> str:
    return node.label if isinstance(node, CostGroup) else node.name


def _apply_path(node: Node, parent: Node | None) -> None:
    token = _node_path_token(node)
    label = _node_label(node)
    if parent is None:
        node.path = token
        node.search_text = label
    else:
        node.path = f"{parent.path}.{token}"
        node.search_text = f"{parent.search_text} / {label}"


def _insert_node(db: Session, node: Node, parent: Node | None) -> Node:
    validate_depth(node, parent)
    with db.begin_nested():
        db.add(node)
        db.flush()
        _apply_path(node, parent)
        db.flush()
    return node


def invalidate_subtree(db: Session, root: Node) -> int:
    """Recompute path and search text for every descendant of ``root``. Returns nodes touched."""
    model = type(root)
    touched = 0
    frontier = [root]
    while frontier:
        parent = frontier.pop()
        children = db.execute(select(model).where(model.parent_id == parent.id)).scalars().all()
        for child in children:
            validate_depth(child, parent)
            _apply_path(child, parent)
            touched += 1
            frontier.append(child)
    db.flush()
    return touched


# =============================================================================
# Locations
# =============================================================================


def _find_location(db: Session, name: str, loc_type: LocationType, parent_id: int | None) -> Location | None:
    query = select(Location).where(Location.name == name, Location.type == loc_type.value)
    # Buildings are matched by name alone
    if loc_type == LocationType.BUILDING:
        return db.execute(query.order_by(Location.id).limit(1)).scalar_one_or_none()
    if parent_id is None:
        query = query.where(Location.parent_id.is_(None))
    else:
        query = query.where(Location.parent_id == parent_id)
    return db.execute(query.order_by(Location.id).limit(1)).scalar_one_or_none()


def _get_or_create_location_node(
    db: Session,
    name: str,
    loc_type: LocationType,
    parent: Location | None,
) -> Location:
    parent_id = parent.id if parent else None
    existing = _find_location(db, name, loc_type, parent_id)
    if existing:
        return existing
    node = Location(
        name=name,
        type=loc_type.value,
        parent_id=parent_id,
        depth=loc_type.depth,
    )
    try:
        return _insert_node(db, node, parent)
    except IntegrityError:
        # Lost a race with a concurrent writer; the row exists now
        existing = _find_location(db, name, loc_type, parent_id)
        if existing is None:
            raise
        return existing


def get_or_create_location(
    db: Session,
    building: str | None,
    level: str | None,
    room: str,
) -> Location:
    """
    Idempotently resolve a location tag to its room node.

    Room-only input matches a parentless room by name. Otherwise the
    building, the level under it and the room under that are each looked up
    by name and created when missing.
    """
    if building is None:
        return _get_or_create_location_node(db, room, LocationType.ROOM, None)

    building_node = _get_or_create_location_node(db, building, LocationType.BUILDING, None)
    level_node = _get_or_create_location_node(
        db, level or DEFAULT_LEVEL_NAME, LocationType.LEVEL, building_node
    )
    return _get_or_create_location_node(db, room, LocationType.ROOM, level_node)


def rename_location(db: Session, location_id: int, name: str) -> Location:
    """Rename a location and refresh the cached paths of its whole subtree."""
    location = db.get(Location, location_id)
    if not location:
        raise HierarchyNodeNotFoundError(f"Location {location_id} not found")
    location.name = name
    _apply_path(location, location.parent)
    invalidate_subtree(db, location)
    db.commit()
    db.refresh(location)
    return location


def find_location_ids_by_search(db: Session, search: str | None) -> list[int]:
    """
    Ids of locations matching ``search`` by name or full path, plus every descendant.

    Searching "Building A" therefore also yields its levels and rooms.
    """
    term = normalize_search_text(search)
    if not term:
        return []
    pattern = f"%{escape_like_string(term)}%"
    matched = db.execute(
        select(Location.id, Location.path).where(
            or_(
                Location.name.ilike(pattern, escape="\\"),
                Location.search_text.ilike(pattern, escape="\\"),
            )
        )
    ).all()
    if not matched:
        return []

    ids = {row.id for row in matched}
    descendant_clauses = [Location.path.like(f"{row.path}.%") for row in matched]
    for chunk_start in range(0, len(descendant_clauses), 200):
        chunk = descendant_clauses[chunk_start:chunk_start + 200]
        ids.update(db.execute(select(Location.id).where(or_(*chunk))).scalars().all())
    return sorted(ids)


# =============================================================================
# Cost groups
# =============================================================================


def get_cost_group_by_code(db: Session, code: int) -> CostGroup | None:
    return db.execute(select(CostGroup).where(CostGroup.code == code)).scalar_one_or_none()


def get_or_create_cost_group(db: Session, code: int, name: str | None = None) -> CostGroup:
    """
    Idempotently resolve a cost code, creating missing ancestors top-down.

    An existing code is returned unchanged (its name is not overwritten).
    Ancestors are created without a name.
    """
    if not MIN_COST_GROUP_CODE <= code <= MAX_COST_GROUP_CODE:
        raise HierarchyError(f"Cost group code out of range: {code}")

    existing = get_cost_group_by_code(db, code)
    if existing:
        return existing

    parent_code = parent_cost_group_code(code)
    parent = get_or_create_cost_group(db, parent_code) if parent_code else None

    node = CostGroup(
        code=code,
        name=name,
        parent_id=parent.id if parent else None,
        depth=0 if parent is None else parent.depth + 1,
    )
    try:
        return _insert_node(db, node, parent)
    except IntegrityError:
        existing = get_cost_group_by_code(db, code)
        if existing is None:
            raise
        return existing


def rename_cost_group(db: Session, cost_group_id: int, name: str | None) -> CostGroup:
    """Rename a cost group and refresh the cached search text of its subtree."""
    cost_group = db.get(CostGroup, cost_group_id)
    if not cost_group:
        raise HierarchyNodeNotFoundError(f"Cost group {cost_group_id} not found")
    cost_group.name = name
    _apply_path(cost_group, cost_group.parent)
    invalidate_subtree(db, cost_group)
    db.commit()
    db.refresh(cost_group)
    return cost_group


def ancestor_ids(nodes: Iterable[Node]) -> list[int]:
    """Ids of the given location nodes and all their ancestors (from cached paths)."""
    ids: set[int] = set()
    for node in nodes:
        if isinstance(node, Location):
            ids.update(node.path_ids)
        ids.add(node.id)
    return sorted(ids)
