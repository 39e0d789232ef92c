"""Involvement service - who is involved in which task or message.

Records are keyed by (item, person, involvement type) and are fully
rebuildable from base tables. People are resolved through person links;
identities without a link contribute nothing.
"""

import logging
import uuid
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from unified_index.db.enums import InvolvementType, ItemType, PersonSource
from unified_index.db.models import (
    InvolvementRecord,
    MConversationAssignee,
    MConversationAuthor,
    MConversationComment,
    MMessage,
    MMessageRecipient,
    MUser,
    PersonLink,
    TwTask,
    tw_task_assignees,
)

logger = logging.getLogger(__name__)


def _person_ids(db: Session, source: PersonSource, external_ids: Iterable[str | None]) -> set[uuid.UUID]:
    ids = sorted({str(external_id) for external_id in external_ids if external_id})
    if not ids:
        return set()
    return set(
        db.execute(
            select(PersonLink.person_id).where(
                PersonLink.source == source.value,
                PersonLink.external_id.in_(ids),
            )
        ).scalars()
    )


def _contact_ids_for_users(db: Session, user_ids: Iterable[str]) -> list[str]:
    user_ids = sorted(set(user_ids))
    if not user_ids:
        return []
    return [
        contact_id
        for contact_id in db.execute(
            select(MUser.contact_id).where(MUser.id.in_(user_ids))
        ).scalars()
        if contact_id
    ]


def _replace_records(
    db: Session,
    item_type: ItemType,
    item_id: str,
    involvement: dict[InvolvementType, set[uuid.UUID]],
) -> int:
    db.execute(
        delete(InvolvementRecord)
        .where(
            InvolvementRecord.item_id == item_id,
            InvolvementRecord.item_type == item_type.value,
        )
        .execution_options(synchronize_session="fetch")
    )
    count = 0
    for involvement_type, person_ids in involvement.items():
        for person_id in person_ids:
            db.add(
                InvolvementRecord(
                    item_id=item_id,
                    item_type=item_type.value,
                    person_id=person_id,
                    involvement_type=involvement_type.value,
                )
            )
            count += 1
    db.flush()
    return count


# =============================================================================
# Tasks
# =============================================================================


def _task_involvement(db: Session, task: TwTask) -> dict[InvolvementType, set[uuid.UUID]]:
    assignee_ids = db.execute(
        select(tw_task_assignees.c.user_id).where(tw_task_assignees.c.task_id == task.id)
    ).scalars()
    return {
        InvolvementType.ASSIGNEE: _person_ids(db, PersonSource.TEAMWORK_USER, assignee_ids),
        InvolvementType.CREATOR: _person_ids(db, PersonSource.TEAMWORK_USER, [task.created_by_id]),
        InvolvementType.UPDATER: _person_ids(db, PersonSource.TEAMWORK_USER, [task.updated_by_id]),
    }


def refresh_task_involvement(db: Session, task_id: str) -> int:
    """Recompute the records of one task; deleted or missing tasks end up with none."""
    task = db.get(TwTask, task_id)
    involvement = {}
    if task is not None and task.deleted_at is None:
        involvement = _task_involvement(db, task)
    return _replace_records(db, ItemType.TASK, task_id, involvement)


# =============================================================================
# Messages
# =============================================================================


def _conversation_involvement(db: Session, conversation_id: str) -> dict[InvolvementType, set[uuid.UUID]]:
    assignee_users = db.execute(
        select(MConversationAssignee.user_id).where(
            MConversationAssignee.conversation_id == conversation_id
        )
    ).scalars()
    author_contacts = db.execute(
        select(MConversationAuthor.contact_id).where(
            MConversationAuthor.conversation_id == conversation_id
        )
    ).scalars()
    commentator_users = [
        author_id
        for author_id in db.execute(
            select(MConversationComment.author_id).where(
                MConversationComment.conversation_id == conversation_id
            )
        ).scalars()
        if author_id
    ]
    contact = PersonSource.MISSIVE_CONTACT
    return {
        InvolvementType.CONVERSATION_ASSIGNEE: _person_ids(
            db, contact, _contact_ids_for_users(db, assignee_users)
        ),
        InvolvementType.CONVERSATION_AUTHOR: _person_ids(db, contact, author_contacts),
        InvolvementType.CONVERSATION_COMMENTATOR: _person_ids(
            db, contact, _contact_ids_for_users(db, commentator_users)
        ),
    }


def _message_involvement(
    db: Session,
    message: MMessage,
    conversation_involvement: dict[InvolvementType, set[uuid.UUID]] | None = None,
) -> dict[InvolvementType, set[uuid.UUID]]:
    recipient_contacts = db.execute(
        select(MMessageRecipient.contact_id).where(MMessageRecipient.message_id == message.id)
    ).scalars()
    involvement = {
        InvolvementType.SENDER: _person_ids(
            db, PersonSource.MISSIVE_CONTACT, [message.from_contact_id]
        ),
        InvolvementType.RECIPIENT: _person_ids(db, PersonSource.MISSIVE_CONTACT, recipient_contacts),
    }
    if conversation_involvement is None:
        conversation_involvement = _conversation_involvement(db, message.conversation_id)
    involvement.update(conversation_involvement)
    return involvement


def refresh_message_involvement(db: Session, message_id: str) -> int:
    """Recompute the records of one message, including its conversation-level roles."""
    message = db.get(MMessage, message_id)
    involvement = _message_involvement(db, message) if message is not None else {}
    return _replace_records(db, ItemType.EMAIL, message_id, involvement)


def refresh_conversation_involvement(db: Session, conversation_id: str) -> int:
    """Recompute every message of a conversation. Returns records written."""
    conversation_involvement = _conversation_involvement(db, conversation_id)
    messages = db.execute(
        select(MMessage).where(MMessage.conversation_id == conversation_id)
    ).scalars().all()
    total = 0
    for message in messages:
        involvement = _message_involvement(db, message, conversation_involvement)
        total += _replace_records(db, ItemType.EMAIL, message.id, involvement)
    return total


def refresh_item_involvement(db: Session, item_type: str, item_id: str) -> int:
    item_type = ItemType(item_type)
    if item_type == ItemType.TASK:
        return refresh_task_involvement(db, item_id)
    if item_type == ItemType.EMAIL:
        return refresh_message_involvement(db, item_id)
    raise ValueError(f"Items of type {item_type.value} carry no involvement")


# =============================================================================
# Full rebuild
# =============================================================================


def refresh_all_involvement(db: Session) -> int:
    """Wipe and rebuild every involvement record. Returns the number of rows."""
    db.execute(delete(InvolvementRecord).execution_options(synchronize_session="fetch"))
    total = 0

    tasks = db.execute(select(TwTask).where(TwTask.deleted_at.is_(None))).scalars().all()
    for task in tasks:
        total += _replace_records(db, ItemType.TASK, task.id, _task_involvement(db, task))

    conversation_ids = db.execute(select(MMessage.conversation_id).distinct()).scalars().all()
    for conversation_id in conversation_ids:
        total += refresh_conversation_involvement(db, conversation_id)

    logger.info("Rebuilt involvement index: %d record(s)", total)
    return total


def get_item_involvement(db: Session, item_type: str, item_id: str) -> list[InvolvementRecord]:
    return list(
        db.execute(
            select(InvolvementRecord).where(
                InvolvementRecord.item_type == ItemType(item_type).value,
                InvolvementRecord.item_id == item_id,
            )
        ).scalars()
    )
