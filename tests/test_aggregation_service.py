"""Tests for projecting base records into the aggregated item store."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from unified_index.db.models import (
    AggregatedItem,
    CraftDocument,
    MAttachment,
    MContact,
    MConversation,
    MMessage,
    MMessageRecipient,
    RefreshStatus,
    TwCompany,
    TwProject,
    TwTask,
)
from unified_index.services import (
    aggregation_service,
    classification_service,
    hierarchy_service,
    projection_service,
)
from unified_index.types import TaskTarget
from unified_index.utils.datetime_parsing import utcnow


def _prepare(db) -> None:
    aggregation_service.ensure_refresh_status_rows(db)
    db.commit()


def _flags(db) -> dict[str, bool]:
    db.expire_all()
    return {status.segment: status.needs_refresh for status in aggregation_service.get_refresh_status(db)}


def _item(db, item_id: str, item_type: str) -> AggregatedItem | None:
    return db.get(AggregatedItem, (item_id, item_type))


def test_refresh_all_projects_tasks_with_hierarchy(db, make_task):
    db.add(TwCompany(id="co1", name="Acme GmbH"))
    db.add(TwProject(id="p1", name="Harbor Tower", company_id="co1"))
    db.flush()
    make_task("t1", ["KGR456 Doors", "O-Alpha-1-101"], status="open", project_id="p1")
    classification_service.rederive_associations(db, TaskTarget("t1"))
    _prepare(db)

    results = aggregation_service.refresh_all(db)

    assert results == [("task", True), ("email", True), ("craft", True), ("file", True)]
    item = _item(db, "t1", "task")
    room = hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    cost_group = hierarchy_service.get_cost_group_by_code(db, 456)
    assert item.name == "Task t1"
    assert (item.project, item.customer, item.status) == ("Harbor Tower", "Acme GmbH", "open")
    assert (item.cost_group, item.cost_group_code) == ("Doors", 456)
    assert item.cost_group_ids == [cost_group.id]
    assert (item.location, item.location_path) == ("101", "Alpha / 1 / 101")
    assert sorted(item.location_ids) == sorted(room.path_ids)
    assert item.tags == ["KGR456 Doors", "O-Alpha-1-101"]
    assert "Harbor Tower" in item.search_text
    assert all(not flag for flag in _flags(db).values())


def test_refresh_skips_soft_deleted_tasks(db, make_task):
    make_task("t1")
    make_task("t2", deleted_at=utcnow())
    _prepare(db)

    aggregation_service.refresh_segment(db, "task")

    ids = db.execute(select(AggregatedItem.id).where(AggregatedItem.type == "task")).scalars().all()
    assert ids == ["t1"]


def test_writes_flag_only_dependent_segments(db):
    _prepare(db)
    aggregation_service.refresh_all(db)

    db.add(CraftDocument(id="d1", title="Site minutes"))
    db.flush()

    assert _flags(db) == {"craft": True, "email": False, "file": False, "task": False}


def test_refresh_stale_refreshes_only_flagged_segments(db):
    _prepare(db)
    aggregation_service.refresh_all(db)
    db.add(CraftDocument(id="d1", title="Site minutes", markdown_content="Concrete pour"))
    db.commit()

    results = aggregation_service.refresh_stale(db, now=utcnow())

    assert results == [("task", False), ("email", False), ("craft", True), ("file", False)]
    item = _item(db, "d1", "craft")
    assert item.name == "Site minutes"
    assert "Concrete pour" in item.search_text


def test_refresh_stale_honours_interval(db):
    _prepare(db)
    aggregation_service.refresh_all(db)

    later = utcnow() + timedelta(minutes=10)
    results = dict(aggregation_service.refresh_stale(db, now=later))

    assert all(results.values())


def test_merge_updates_and_removes_rows(db, make_task):
    make_task("t1")
    make_task("t2")
    _prepare(db)
    aggregation_service.refresh_all(db)

    db.get(TwTask, "t1").name = "Renamed"
    db.get(TwTask, "t2").deleted_at = utcnow()
    db.commit()
    assert aggregation_service.refresh_segment(db, "task") is True

    assert _item(db, "t1", "task").name == "Renamed"
    assert _item(db, "t2", "task") is None


def test_merge_segment_rows_reports_changes(db, make_task):
    make_task("t1")
    make_task("t2")
    _prepare(db)
    aggregation_service.refresh_all(db)

    rows = projection_service.project_segment(db, "task")
    rows[0]["name"] = "Changed"
    stats = aggregation_service.merge_segment_rows(db, "task", rows[:1])

    assert stats == {"inserted": 0, "updated": 1, "deleted": 1}


def test_email_rows_carry_involved_emails(db):
    db.add_all(
        [
            MContact(id="c1", name="Sam Sender", email="Sam@Example.com"),
            MContact(id="c2", name="Rita", email="rita@example.com"),
            MConversation(id="conv1", subject="Offer"),
        ]
    )
    db.flush()
    delivered = datetime(2026, 2, 3, 10, 0, tzinfo=timezone.utc)
    db.add(
        MMessage(
            id="m1",
            conversation_id="conv1",
            from_contact_id="c1",
            body_plain_text="Please find the offer attached.",
            delivered_at=delivered,
        )
    )
    db.flush()
    db.add(MMessageRecipient(message_id="m1", contact_id="c2", recipient_type="to"))
    _prepare(db)

    aggregation_service.refresh_segment(db, "email", concurrent=False)

    item = _item(db, "m1", "email")
    assert item.name == "Offer"
    assert item.involved_emails == ["rita@example.com", "sam@example.com"]
    assert item.recipients == ["Rita <rita@example.com>"]
    assert item.creator == "Sam Sender <Sam@Example.com>"
    assert item.description == "Please find the offer attached."


def test_email_rows_hold_many_attachment_extensions(db):
    extensions = ["csv", "docx", "dwg", "eml", "jpeg", "msg", "pdf", "pptx", "tiff", "xlsx", "zip"]
    long_name = "N" * 255
    db.add_all(
        [
            MContact(id="c1", name=long_name, email=f"{'s' * 240}@example.com"),
            MConversation(id="conv1", subject="Plans"),
        ]
    )
    db.flush()
    db.add(MMessage(id="m1", conversation_id="conv1", from_contact_id="c1"))
    db.flush()
    db.add_all(
        MAttachment(id=f"a{i}", message_id="m1", filename=f"plan.{ext}", extension=ext)
        for i, ext in enumerate(extensions)
    )
    _prepare(db)

    aggregation_service.refresh_segment(db, "email", concurrent=False)

    item = _item(db, "m1", "email")
    assert item.file_extension == ", ".join(extensions)
    assert item.creator.startswith(long_name)
    columns = AggregatedItem.__table__.c
    assert columns.file_extension.type.length is None
    assert columns.creator.type.length is None


def test_is_segment_stale():
    now = utcnow()
    fresh = RefreshStatus(
        segment="task", needs_refresh=False, last_refreshed_at=now, refresh_interval_minutes=5
    )
    expired = RefreshStatus(
        segment="task",
        needs_refresh=False,
        last_refreshed_at=now - timedelta(minutes=6),
        refresh_interval_minutes=5,
    )
    flagged = RefreshStatus(
        segment="task", needs_refresh=True, last_refreshed_at=now, refresh_interval_minutes=5
    )

    assert aggregation_service.is_segment_stale(fresh, now) is False
    assert aggregation_service.is_segment_stale(expired, now) is True
    assert aggregation_service.is_segment_stale(flagged, now) is True


def test_refresh_skips_when_lock_is_held(db):
    _prepare(db)

    with aggregation_service.refresh_lock(db) as acquired:
        assert acquired
        assert aggregation_service.refresh_segment(db, "craft") is False
