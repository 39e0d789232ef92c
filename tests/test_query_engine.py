"""Tests for item filters, visibility, sorting and pagination."""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from unified_index.core.app_config import AppConfig, set_app_config
from unified_index.db.models import AggregatedItem, InvolvementRecord, UnifiedPerson
from unified_index.query import engine
from unified_index.query.filters import AccessContext, ItemFilters
from unified_index.services import hierarchy_service

BASE_TIME = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)
ADMIN = AccessContext(is_admin=True)


@pytest.fixture
def add_item(db):
    def _add(item_id: str, item_type: str = "task", **fields) -> AggregatedItem:
        fields.setdefault("name", f"{item_type} {item_id}")
        fields.setdefault("sort_date", BASE_TIME)
        item = AggregatedItem(id=item_id, type=item_type, **fields)
        db.add(item)
        db.flush()
        return item

    return _add


def _keys(page):
    return [(item.id, item.type) for item in page.items]


# =============================================================================
# Visibility
# =============================================================================


def test_messages_hidden_without_caller(db, add_item):
    add_item("t1")
    add_item("m1", "email", involved_emails=["alice@example.com"])

    assert _keys(engine.query_items(db)) == [("t1", "task")]


def test_messages_visible_to_involved_caller(db, add_item):
    add_item("m1", "email", involved_emails=["alice@example.com"])
    add_item("m2", "email", involved_emails=["bob@example.com"])

    page = engine.query_items(db, access=AccessContext(email="Alice@Example.com"))

    assert _keys(page) == [("m1", "email")]


def test_public_addresses_make_messages_visible(db, add_item):
    set_app_config(AppConfig(version=1, public_email_addresses=("info@firm.test",)))
    add_item("m1", "email", involved_emails=["info@firm.test", "client@example.com"])
    add_item("m2", "email", involved_emails=["client@example.com"])

    assert _keys(engine.query_items(db)) == [("m1", "email")]


def test_admin_sees_every_message(db, add_item):
    add_item("m1", "email", involved_emails=["alice@example.com"])
    add_item("m2", "email")

    assert len(engine.query_items(db, access=ADMIN).items) == 2


# =============================================================================
# Filters
# =============================================================================


def test_involved_person_without_match_returns_nothing(db, add_item):
    add_item("t1")

    page = engine.query_items(db, ItemFilters(involved_person="nobody"), access=ADMIN)

    assert page.items == []


def test_involved_person_matches_through_involvement(db, add_item):
    person = UnifiedPerson(id=uuid.uuid4(), display_name="Erin Hale", primary_email="erin@example.com")
    db.add(person)
    add_item("t1")
    add_item("t2")
    add_item("m1", "email", involved_emails=["erin@example.com"])
    db.add_all(
        [
            InvolvementRecord(item_id="t1", item_type="task", person_id=person.id, involvement_type="assignee"),
            InvolvementRecord(item_id="m1", item_type="email", person_id=person.id, involvement_type="sender"),
        ]
    )
    db.flush()

    page = engine.query_items(
        db, ItemFilters(involved_person="erin"), sort_field="name", sort_order="asc", access=ADMIN
    )

    assert _keys(page) == [("m1", "email"), ("t1", "task")]


def test_cost_group_code_filter_matches_range(db, add_item):
    add_item("t1", cost_group_code=456)
    add_item("t2", cost_group_code=310)
    add_item("t3")

    page = engine.query_items(db, ItemFilters(cost_group_code="4"))

    assert _keys(page) == [("t1", "task")]


def test_invalid_cost_group_code_is_ignored(db, add_item):
    add_item("t1", cost_group_code=456)
    add_item("t2")

    assert len(engine.query_items(db, ItemFilters(cost_group_code="abc")).items) == 2


def test_location_search_matches_descendant_rooms(db, add_item):
    room = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    other = hierarchy_service.get_or_create_location(db, "Beta", "2", "201")
    add_item("t1", location_ids=room.path_ids)
    add_item("t2", location_ids=other.path_ids)
    add_item("t3")

    assert _keys(engine.query_items(db, ItemFilters(location_search="alpha"))) == [("t1", "task")]
    assert engine.query_items(db, ItemFilters(location_search="Gamma")).items == []


def test_empty_list_filter_is_a_no_op(db, add_item):
    add_item("t1", status="open")
    add_item("t2", status="done")

    assert len(engine.query_items(db, ItemFilters(status_in=[], types=[])).items) == 2


def test_status_not_in_keeps_null_status(db, add_item):
    add_item("t1", status="open")
    add_item("t2", status="done")
    add_item("t3")

    page = engine.query_items(db, ItemFilters(status_not_in=["done"]), sort_field="name", sort_order="asc")

    assert _keys(page) == [("t1", "task"), ("t3", "task")]


def test_text_search_escapes_wildcards(db, add_item):
    add_item("t1", search_text="progress 100% done")
    add_item("t2", search_text="progress 1000 done")

    page = engine.query_items(db, ItemFilters(text_search="100%"))

    assert _keys(page) == [("t1", "task")]


def test_task_type_filter_only_restricts_tasks(db, add_item):
    add_item("t1", task_type_id=1)
    add_item("t2", task_type_id=2)
    add_item("d1", "craft")

    page = engine.query_items(db, ItemFilters(task_types=[1]), sort_field="name", sort_order="asc")

    assert _keys(page) == [("d1", "craft"), ("t1", "task")]


def test_due_date_range_and_null_filters(db, add_item):
    add_item("t1", due_date=date(2026, 5, 1))
    add_item("t2", due_date=date(2026, 6, 1))
    add_item("t3")

    in_range = engine.query_items(db, ItemFilters(due_date_min=date(2026, 5, 15)))
    undated = engine.query_items(db, ItemFilters(due_date_is_null=True))

    assert _keys(in_range) == [("t2", "task")]
    assert _keys(undated) == [("t3", "task")]


# =============================================================================
# Sorting and pagination
# =============================================================================


def test_pages_are_disjoint_when_sort_values_tie(db, add_item):
    for n in range(7):
        add_item(f"t{n}")

    seen = []
    for offset in range(0, 8, 3):
        seen.extend(_keys(engine.query_items(db, limit=3, offset=offset)))

    assert seen == [(f"t{n}", "task") for n in range(7)]


def test_nulls_sort_last_in_both_directions(db, add_item):
    add_item("t1", due_date=date(2026, 5, 1))
    add_item("t2")
    add_item("t3", due_date=date(2026, 6, 1))

    ascending = engine.query_items(db, sort_field="due_date", sort_order="asc")
    descending = engine.query_items(db, sort_field="due_date", sort_order="desc")

    assert [item.id for item in ascending.items] == ["t1", "t3", "t2"]
    assert [item.id for item in descending.items] == ["t3", "t1", "t2"]


def test_default_sort_is_newest_first(db, add_item):
    add_item("old", sort_date=BASE_TIME - timedelta(days=1))
    add_item("new", sort_date=BASE_TIME)

    page = engine.query_items(db)

    assert [item.id for item in page.items] == ["new", "old"]
    assert (page.sort_field, page.sort_order) == ("sort_date", "desc")


def test_resolve_sort_falls_back_for_unknown_values():
    assert engine.resolve_sort("password", "sideways") == ("sort_date", engine.SortOrder.DESC)
    assert engine.resolve_sort("name", "ASC") == ("name", engine.SortOrder.ASC)


@pytest.mark.parametrize(
    "limit,offset,expected",
    [(None, None, (50, 0)), (0, -5, (1, 0)), (10_000, 20, (500, 20))],
)
def test_clamp_page(limit, offset, expected):
    assert engine.clamp_page(limit, offset) == expected


# =============================================================================
# Counts
# =============================================================================


def test_count_with_metadata(db, add_item):
    add_item("t1", status="open", task_type_id=3, tags=["urgent"])
    add_item("t2", task_type_id=3)
    add_item("d1", "craft", description="Minutes")
    add_item("m1", "email", involved_emails=["x@example.com"], body="Hello")

    counts = engine.count_with_metadata(db)

    assert counts.total_count == 3
    assert counts.type_counts == {"task": 2, "email": 0, "craft": 1, "file": 0}
    assert counts.task_type_counts == {3: 2}
    assert set(counts.nonempty_columns) == {"status", "tags", "description"}


def test_count_ignores_blank_strings(db, add_item):
    add_item("t1", description="", creator="", progress=0)
    add_item("d1", "craft", file_extension="")

    counts = engine.count_with_metadata(db)

    assert counts.total_count == 2
    assert counts.nonempty_columns == ["progress"]


def test_count_respects_filters(db, add_item):
    add_item("t1", status="open")
    add_item("t2", status="done")

    assert engine.count_with_metadata(db, ItemFilters(status_in=["open"])).total_count == 1
