"""Teamwork queue item handlers."""

from __future__ import annotations

import logging

from sqlalchemy import select

from unified_index.db.enums import PersonSource
from unified_index.db.models import TwCompany, TwProject, TwTag, TwTask, TwTasklist, TwUser, tw_task_tags
from unified_index.events import ExternalIdentityCreated, TaskChanged, TaskTagsChanged, publish
from unified_index.jobs.utils import apply_fields, id_list, optional_id, payload_of
from unified_index.services import identity_service
from unified_index.utils.datetime_parsing import parse_date, parse_datetime, utcnow

logger = logging.getLogger(__name__)

_ID_FIELDS = {"company_id": optional_id, "project_id": optional_id, "tasklist_id": optional_id}


def _get_or_add(db, model, external_id: str, **defaults):
    record = db.get(model, external_id)
    if record is None:
        record = model(id=external_id, **defaults)
        db.add(record)
    return record


def _publish_identity_if_unlinked(db, source: PersonSource, external_id: str) -> None:
    # Users first seen as an assignee reference exist without a link yet
    if identity_service.get_link(db, source.value, external_id) is None:
        publish(db, ExternalIdentityCreated(source=source.value, external_id=external_id))


async def process_company_upsert(db, item) -> None:
    payload = payload_of(item)
    company = _get_or_add(db, TwCompany, item.external_id, name=payload.get("name") or "")
    apply_fields(company, payload, ("name", "email_one"))
    db.flush()
    _publish_identity_if_unlinked(db, PersonSource.TEAMWORK_COMPANY, company.id)


async def process_user_upsert(db, item) -> None:
    payload = payload_of(item)
    user = _get_or_add(db, TwUser, item.external_id)
    apply_fields(user, payload, ("first_name", "last_name", "email", "company_id"), _ID_FIELDS)
    db.flush()
    _publish_identity_if_unlinked(db, PersonSource.TEAMWORK_USER, user.id)


async def process_tag_upsert(db, item) -> None:
    """A renamed tag re-classifies every task that carries it."""
    payload = payload_of(item)
    tag = db.get(TwTag, item.external_id)
    created = tag is None
    if created:
        tag = TwTag(id=item.external_id, name=payload.get("name") or "")
        db.add(tag)
    renamed = apply_fields(tag, payload, ("name",))
    db.flush()
    if created or not renamed:
        return
    task_ids = db.execute(
        select(tw_task_tags.c.task_id).where(tw_task_tags.c.tag_id == tag.id)
    ).scalars().all()
    for task_id in task_ids:
        publish(db, TaskTagsChanged(task_id=task_id))


async def process_project_upsert(db, item) -> None:
    payload = payload_of(item)
    project = _get_or_add(db, TwProject, item.external_id, name=payload.get("name") or "")
    apply_fields(project, payload, ("name", "description", "status", "company_id"), _ID_FIELDS)
    if "updated_at" in payload:
        project.updated_at = parse_datetime(payload["updated_at"]) or utcnow()
    db.flush()


async def process_tasklist_upsert(db, item) -> None:
    payload = payload_of(item)
    tasklist = _get_or_add(db, TwTasklist, item.external_id, name=payload.get("name") or "")
    apply_fields(tasklist, payload, ("name", "project_id"), _ID_FIELDS)
    db.flush()


def _sync_tags(db, task: TwTask, payload: dict) -> bool:
    """Tags arrive inline as ``[{"id", "name"}]``; unknown tags are created."""
    if "tags" not in payload:
        return False
    tags: list[TwTag] = []
    for entry in payload.get("tags") or []:
        tag = _get_or_add(db, TwTag, str(entry["id"]), name=entry.get("name") or "")
        if entry.get("name") and tag.name != entry["name"]:
            tag.name = entry["name"]
        tags.append(tag)
    if {tag.id for tag in task.tags} == {tag.id for tag in tags}:
        return False
    task.tags = tags
    return True


def _sync_assignees(db, task: TwTask, payload: dict) -> bool:
    assignee_ids = id_list(payload, "assignee_ids")
    if assignee_ids is None or {user.id for user in task.assignees} == set(assignee_ids):
        return False
    task.assignees = [_get_or_add(db, TwUser, user_id) for user_id in assignee_ids]
    return True


async def process_task_upsert(db, item) -> None:
    """
    Apply a task snapshot.

    Payload keys mirror the task columns, plus ``tags`` (inline tag objects)
    and ``assignee_ids``. Absent keys leave the stored value unchanged.
    """
    payload = payload_of(item)
    task = db.get(TwTask, item.external_id)
    created = task is None
    if created:
        task = TwTask(id=item.external_id, name=payload.get("name") or "")
        db.add(task)

    apply_fields(task, payload, ("name", "description", "status", "priority", "progress"))
    apply_fields(task, payload, ("due_date",), {"due_date": parse_date})
    apply_fields(
        task,
        payload,
        ("project_id", "tasklist_id", "created_by_id", "updated_by_id"),
        {**_ID_FIELDS, "created_by_id": optional_id, "updated_by_id": optional_id},
    )
    if payload.get("created_at"):
        task.created_at = parse_datetime(payload["created_at"])
    task.updated_at = parse_datetime(payload.get("updated_at")) or utcnow()
    task.deleted_at = None

    tags_changed = _sync_tags(db, task, payload)
    _sync_assignees(db, task, payload)
    db.flush()

    if created or tags_changed:
        publish(db, TaskTagsChanged(task_id=task.id))
    publish(db, TaskChanged(task_id=task.id))


async def process_task_delete(db, item) -> None:
    """Soft delete; the task drops out of the index on the next refresh."""
    task = db.get(TwTask, item.external_id)
    if task is None:
        logger.info("Delete for unknown task %s ignored", item.external_id)
        return
    if task.deleted_at is None:
        task.deleted_at = parse_datetime(payload_of(item).get("deleted_at")) or utcnow()
    db.flush()
    publish(db, TaskChanged(task_id=task.id))
