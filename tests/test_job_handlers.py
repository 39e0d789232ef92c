"""Tests for applying source snapshots to base records and the events they trigger."""

import pytest
from sqlalchemy import select

from unified_index.db.enums import InvolvementType
from unified_index.db.models import (
    CraftDocument,
    MAttachment,
    MContact,
    MConversation,
    MConversationAuthor,
    MMessageRecipient,
    ProjectConversation,
    QueueItem,
    TwProject,
    TwTask,
)
from unified_index.jobs.handlers import craft, missive, teamwork
from unified_index.services import classification_service, identity_service, involvement_service
from unified_index.types import ConversationTarget, TaskTarget


def _item(source: str, event_type: str, external_id: str, payload: dict | None = None) -> QueueItem:
    return QueueItem(source=source, event_type=event_type, external_id=external_id, payload=payload or {})


def _cost_codes(db, target) -> list[int]:
    return sorted(link.cost_group.code for link in classification_service.list_cost_group_links(db, target))


# =============================================================================
# Teamwork
# =============================================================================


async def test_task_upsert_keeps_absent_fields(db):
    await teamwork.process_task_upsert(
        db, _item("teamwork", "task.upsert", "t1", {"name": "Pour slab", "priority": "high"})
    )
    await teamwork.process_task_upsert(db, _item("teamwork", "task.upsert", "t1", {"status": "done"}))

    task = db.get(TwTask, "t1")
    assert (task.name, task.priority, task.status) == ("Pour slab", "high", "done")


async def test_tag_rename_reclassifies_tasks(db):
    await teamwork.process_task_upsert(
        db,
        _item("teamwork", "task.upsert", "t1", {"name": "Doors", "tags": [{"id": "g1", "name": "KGR456 Doors"}]}),
    )
    assert _cost_codes(db, TaskTarget("t1")) == [456]

    await teamwork.process_tag_upsert(db, _item("teamwork", "tag.upsert", "g1", {"name": "KGR310 Foundations"}))

    assert _cost_codes(db, TaskTarget("t1")) == [310]


async def test_task_delete_is_soft(db):
    await teamwork.process_task_upsert(db, _item("teamwork", "task.upsert", "t1", {"name": "Old"}))

    await teamwork.process_task_delete(db, _item("teamwork", "task.delete", "t1"))
    await teamwork.process_task_delete(db, _item("teamwork", "task.delete", "unknown"))

    task = db.get(TwTask, "t1")
    assert task is not None
    assert task.deleted_at is not None


async def test_reupserted_task_is_restored(db):
    await teamwork.process_task_upsert(db, _item("teamwork", "task.upsert", "t1", {"name": "Old"}))
    await teamwork.process_task_delete(db, _item("teamwork", "task.delete", "t1"))

    await teamwork.process_task_upsert(db, _item("teamwork", "task.upsert", "t1", {"name": "Back"}))

    assert db.get(TwTask, "t1").deleted_at is None


async def test_user_upsert_links_person_once(db):
    payload = {"first_name": "Ann", "email": "ann@example.com"}

    await teamwork.process_user_upsert(db, _item("teamwork", "user.upsert", "u1", payload))
    await teamwork.process_user_upsert(db, _item("teamwork", "user.upsert", "u1", {**payload, "last_name": "Lee"}))

    link = identity_service.get_link(db, "teamwork_user", "u1")
    assert link is not None
    assert len(identity_service.list_person_links(db, link.person_id)) == 1


async def test_assignee_involvement_after_user_arrives(db):
    await teamwork.process_user_upsert(
        db, _item("teamwork", "user.upsert", "u1", {"first_name": "Ann", "email": "ann@example.com"})
    )
    await teamwork.process_task_upsert(
        db, _item("teamwork", "task.upsert", "t1", {"name": "Check", "assignee_ids": [1, "u1"]})
    )

    records = involvement_service.get_item_involvement(db, "task", "t1")
    assert [record.involvement_type for record in records] == [InvolvementType.ASSIGNEE.value]


# =============================================================================
# Missive
# =============================================================================


async def test_message_upsert_creates_contacts_and_involvement(db):
    payload = {
        "conversation_id": "conv1",
        "subject": "Offer",
        "from": {"id": "c1", "name": "Sam", "email": "Sam@Example.com"},
        "recipients": [
            {"id": "c2", "email": "rita@example.com", "type": "to"},
            {"id": "c2", "email": "rita@example.com", "type": "to"},
        ],
        "attachments": [{"id": "a1", "filename": "plan.pdf", "extension": "pdf", "size": 1024}],
    }

    await missive.process_message_upsert(db, _item("missive", "message.upsert", "m1", payload))

    assert db.get(MConversation, "conv1") is not None
    assert db.get(MContact, "c1").email == "sam@example.com"
    recipients = db.execute(select(MMessageRecipient).where(MMessageRecipient.message_id == "m1")).scalars().all()
    assert [(r.contact_id, r.recipient_type) for r in recipients] == [("c2", "to")]
    assert db.get(MAttachment, "a1").filename == "plan.pdf"

    types = sorted(record.involvement_type for record in involvement_service.get_item_involvement(db, "email", "m1"))
    assert types == [InvolvementType.RECIPIENT.value, InvolvementType.SENDER.value]


async def test_message_without_conversation_is_rejected(db):
    with pytest.raises(ValueError):
        await missive.process_message_upsert(db, _item("missive", "message.upsert", "m1", {"subject": "x"}))


async def test_comment_without_conversation_is_rejected(db):
    with pytest.raises(ValueError):
        await missive.process_comment_upsert(db, _item("missive", "comment.upsert", "k1", {"body": "x"}))


async def test_conversation_labels_drive_links_and_rename(db):
    db.add(TwProject(id="p1", name="Harbor Tower"))
    db.flush()
    payload = {
        "subject": "Walls",
        "labels": [{"id": "l1", "name": "KGR420 Walls"}, {"id": "l2", "name": "Harbor Tower"}],
    }

    await missive.process_conversation_upsert(db, _item("missive", "conversation.upsert", "conv1", payload))

    assert _cost_codes(db, ConversationTarget("conv1")) == [420]
    assert db.execute(select(ProjectConversation.project_id)).scalars().all() == ["p1"]

    await missive.process_label_upsert(db, _item("missive", "label.upsert", "l1", {"name": "KGR430 Roof"}))

    assert _cost_codes(db, ConversationTarget("conv1")) == [430]


async def test_conversation_authors_are_linked(db):
    payload = {"authors": [{"id": "c9", "name": "Author", "email": "author@example.com"}]}

    await missive.process_conversation_upsert(db, _item("missive", "conversation.upsert", "conv1", payload))

    authors = db.execute(select(MConversationAuthor.contact_id)).scalars().all()
    assert authors == ["c9"]
    assert identity_service.get_link(db, "missive_contact", "c9") is not None


# =============================================================================
# Craft
# =============================================================================


async def test_craft_document_upsert_and_delete(db):
    await craft.process_document_upsert(
        db, _item("craft", "document.upsert", "d1", {"title": "Minutes", "folder_path": "/Site"})
    )
    assert db.get(CraftDocument, "d1").title == "Minutes"

    await craft.process_document_delete(db, _item("craft", "document.delete", "d1"))
    await craft.process_document_delete(db, _item("craft", "document.delete", "missing"))

    assert db.get(CraftDocument, "d1") is None
