"""Tests for the queue worker: outcome recording and periodic sweeps."""

import pytest
from sqlalchemy import insert

from unified_index import worker
from unified_index.core.config import settings
from unified_index.db.enums import QueueStatus
from unified_index.db.models import TwTask, TwUser
from unified_index.jobs.registry import JOB_HANDLERS, resolve_job_handler
from unified_index.services import classification_service, ingestion_queue_service
from unified_index.services.hierarchy_service import HierarchyDepthError
from unified_index.types import TaskTarget


async def _run(db, source: str, event_type: str, external_id: str, payload: dict | None = None):
    ingestion_queue_service.enqueue(db, source, event_type, external_id, payload)
    [item] = ingestion_queue_service.dequeue(db, "worker-test")
    item_id = item.id
    ok = await worker.process_item(db, item, "worker-test")
    return ok, ingestion_queue_service.get_item(db, item_id)


async def test_task_upsert_completes_and_derives_associations(db):
    ok, item = await _run(
        db,
        "teamwork",
        "task.upsert",
        "t1",
        {
            "name": "Hang doors",
            "status": "open",
            "tags": [{"id": 9, "name": "KGR456 Doors"}],
            "assignee_ids": ["u1"],
        },
    )

    assert ok is True
    assert item.status == QueueStatus.COMPLETED.value
    assert item.processing_time_ms is not None
    task = db.get(TwTask, "t1")
    assert (task.name, task.status) == ("Hang doors", "open")
    assert [user.id for user in task.assignees] == ["u1"]
    assert db.get(TwUser, "u1") is not None
    [link] = classification_service.list_cost_group_links(db, TaskTarget("t1"))
    assert link.cost_group.code == 456


async def test_unknown_job_type_is_dead_lettered(db):
    ok, item = await _run(db, "teamwork", "milestone.upsert", "m1")

    assert ok is False
    assert item.status == QueueStatus.DEAD_LETTER.value
    assert "Unknown job type" in item.error_message


async def test_message_without_conversation_is_dead_lettered(db):
    ok, item = await _run(db, "missive", "message.upsert", "msg1", {"subject": "Hello"})

    assert ok is False
    assert item.status == QueueStatus.DEAD_LETTER.value
    assert item.retry_count == 0


async def test_transient_failure_is_retried(db, monkeypatch):
    async def flaky(db, item):
        raise RuntimeError("upstream timeout")

    monkeypatch.setitem(JOB_HANDLERS, ("craft", "document.upsert"), flaky)

    ok, item = await _run(db, "craft", "document.upsert", "d1", {"title": "Minutes"})

    assert ok is False
    assert item.status == QueueStatus.PENDING.value
    assert item.retry_count == 1
    assert item.error_message == "RuntimeError: upstream timeout"
    assert item.next_retry_at is not None


async def test_failed_handler_leaves_no_partial_writes(db, monkeypatch):
    async def half_done(db, item):
        db.add(TwUser(id="u-partial"))
        db.flush()
        raise RuntimeError("crashed midway")

    monkeypatch.setitem(JOB_HANDLERS, ("teamwork", "user.upsert"), half_done)

    await _run(db, "teamwork", "user.upsert", "u-partial")

    assert db.get(TwUser, "u-partial") is None


async def test_hierarchy_error_is_dead_lettered(db, monkeypatch):
    async def bad_depth(db, item):
        raise HierarchyDepthError("room depth 1 under level depth 1")

    monkeypatch.setitem(JOB_HANDLERS, ("teamwork", "task.upsert"), bad_depth)

    ok, item = await _run(db, "teamwork", "task.upsert", "t1", {"name": "Doors"})

    assert ok is False
    assert item.status == QueueStatus.DEAD_LETTER.value
    assert item.retry_count == 0
    assert item.error_message.startswith("HierarchyDepthError")


async def test_failed_completion_commit_is_retried(db, monkeypatch):
    db.execute(insert(TwUser).values(id="u-dup"))
    db.commit()

    async def duplicate_insert(db, item):
        db.add(TwUser(id="u-dup"))

    monkeypatch.setitem(JOB_HANDLERS, ("teamwork", "user.upsert"), duplicate_insert)

    ok, item = await _run(db, "teamwork", "user.upsert", "u-dup")

    assert ok is False
    assert item.status == QueueStatus.PENDING.value
    assert item.retry_count == 1
    assert item.error_message.startswith("IntegrityError")


def test_resolve_job_handler_rejects_unknown():
    with pytest.raises(ValueError):
        resolve_job_handler("teamwork", "nope")


def test_run_due_sweeps_respects_interval(db):
    last_run: dict[str, float] = {}

    first = worker.run_due_sweeps(db, last_run, now=1000.0)
    too_soon = worker.run_due_sweeps(db, last_run, now=1001.0)
    later = worker.run_due_sweeps(db, last_run, now=1000.0 + settings.WORKER_SWEEP_INTERVAL_SECONDS)

    assert first == {"queue": 0, "uploads": 0, "indexing": 0}
    assert too_soon == {}
    assert set(later) == {"queue", "uploads", "indexing"}


def test_run_due_sweeps_survives_failing_sweep(db, monkeypatch):
    def broken(db):
        raise RuntimeError("lock timeout")

    monkeypatch.setitem(worker.SWEEPS, "uploads", broken)
    last_run: dict[str, float] = {}

    results = worker.run_due_sweeps(db, last_run, now=5.0)

    assert set(results) == {"queue", "indexing"}
    assert last_run["uploads"] == 5.0
