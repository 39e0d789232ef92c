"""Missive queue item handlers."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select

from unified_index.db.enums import PersonSource
from unified_index.db.models import (
    MAttachment,
    MContact,
    MConversation,
    MConversationAssignee,
    MConversationAuthor,
    MConversationComment,
    MConversationLabel,
    MMessage,
    MMessageRecipient,
    MSharedLabel,
    MUser,
)
from unified_index.events import (
    ConversationLabelsChanged,
    ConversationParticipantsChanged,
    ExternalIdentityCreated,
    MessageChanged,
    publish,
)
from unified_index.jobs.utils import apply_fields, id_list, optional_id, payload_of
from unified_index.services import identity_service
from unified_index.utils.datetime_parsing import parse_datetime, utcnow
from unified_index.utils.normalization import normalize_email

logger = logging.getLogger(__name__)


def _upsert_contact(db, data: dict) -> MContact:
    """Contacts arrive standalone or embedded in messages as ``{"id", "name", "email"}``."""
    contact_id = str(data["id"])
    contact = db.get(MContact, contact_id)
    if contact is None:
        contact = MContact(id=contact_id)
        db.add(contact)
    apply_fields(contact, data, ("name", "email"), {"email": normalize_email})
    db.flush()
    if identity_service.get_link(db, PersonSource.MISSIVE_CONTACT.value, contact_id) is None:
        publish(
            db,
            ExternalIdentityCreated(source=PersonSource.MISSIVE_CONTACT.value, external_id=contact_id),
        )
    return contact


def _ensure_conversation(db, conversation_id: str) -> MConversation:
    conversation = db.get(MConversation, conversation_id)
    if conversation is None:
        conversation = MConversation(id=conversation_id)
        db.add(conversation)
        db.flush()
    return conversation


def _replace_children(db, model, conversation_id: str, column: str, ids: list[str]) -> bool:
    """Swap a conversation's link rows for ``ids``. Returns True when the set changed."""
    current = set(
        db.execute(
            select(getattr(model, column)).where(model.conversation_id == conversation_id)
        ).scalars()
    )
    if current == set(ids):
        return False
    db.execute(
        delete(model)
        .where(model.conversation_id == conversation_id)
        .execution_options(synchronize_session="fetch")
    )
    for value in dict.fromkeys(ids):
        db.add(model(conversation_id=conversation_id, **{column: value}))
    return True


async def process_contact_upsert(db, item) -> None:
    _upsert_contact(db, {**payload_of(item), "id": item.external_id})


async def process_user_upsert(db, item) -> None:
    payload = payload_of(item)
    user = db.get(MUser, item.external_id)
    if user is None:
        user = MUser(id=item.external_id)
        db.add(user)
    if payload.get("contact"):
        payload = {**payload, "contact_id": _upsert_contact(db, payload["contact"]).id}
    apply_fields(user, payload, ("name", "email", "contact_id"), {"contact_id": optional_id})
    db.flush()


async def process_label_upsert(db, item) -> None:
    """A renamed label re-classifies every conversation that carries it."""
    payload = payload_of(item)
    label = db.get(MSharedLabel, item.external_id)
    created = label is None
    if created:
        label = MSharedLabel(id=item.external_id, name=payload.get("name") or "")
        db.add(label)
    renamed = apply_fields(label, payload, ("name",))
    db.flush()
    if created or not renamed:
        return
    conversation_ids = db.execute(
        select(MConversationLabel.conversation_id).where(MConversationLabel.label_id == label.id)
    ).scalars().all()
    for conversation_id in conversation_ids:
        publish(db, ConversationLabelsChanged(conversation_id=conversation_id))


async def process_conversation_upsert(db, item) -> None:
    """
    Apply a conversation snapshot.

    Optional keys: ``subject``, ``labels`` (inline ``{"id", "name"}``),
    ``assignee_ids`` (missive user ids) and ``authors`` (inline contacts).
    """
    payload = payload_of(item)
    conversation = db.get(MConversation, item.external_id)
    created = conversation is None
    if created:
        conversation = MConversation(id=item.external_id)
        db.add(conversation)
    apply_fields(conversation, payload, ("subject",))
    if payload.get("created_at"):
        conversation.created_at = parse_datetime(payload["created_at"])
    conversation.updated_at = parse_datetime(payload.get("updated_at")) or utcnow()
    db.flush()

    labels_changed = False
    if "labels" in payload:
        label_ids = []
        for entry in payload.get("labels") or []:
            label = db.get(MSharedLabel, str(entry["id"]))
            if label is None:
                label = MSharedLabel(id=str(entry["id"]), name=entry.get("name") or "")
                db.add(label)
            elif entry.get("name"):
                label.name = entry["name"]
            label_ids.append(label.id)
        db.flush()
        labels_changed = _replace_children(db, MConversationLabel, conversation.id, "label_id", label_ids)

    participants_changed = False
    assignee_ids = id_list(payload, "assignee_ids")
    if assignee_ids is not None:
        for user_id in assignee_ids:
            if db.get(MUser, user_id) is None:
                db.add(MUser(id=user_id))
        db.flush()
        participants_changed |= _replace_children(
            db, MConversationAssignee, conversation.id, "user_id", assignee_ids
        )
    if "authors" in payload:
        author_ids = [_upsert_contact(db, entry).id for entry in payload.get("authors") or []]
        participants_changed |= _replace_children(
            db, MConversationAuthor, conversation.id, "contact_id", author_ids
        )
    db.flush()

    if labels_changed:
        publish(db, ConversationLabelsChanged(conversation_id=conversation.id))
    if participants_changed:
        publish(db, ConversationParticipantsChanged(conversation_id=conversation.id))


async def process_message_upsert(db, item) -> None:
    """
    Apply a message snapshot.

    ``from`` and ``recipients`` carry inline contacts (recipients add a
    ``type`` of to/cc/bcc); ``attachments`` replaces the message's attachments.
    """
    payload = payload_of(item)
    conversation_id = optional_id(payload.get("conversation_id"))
    if not conversation_id:
        raise ValueError(f"Message {item.external_id} has no conversation_id")
    _ensure_conversation(db, conversation_id)

    message = db.get(MMessage, item.external_id)
    if message is None:
        message = MMessage(id=item.external_id, conversation_id=conversation_id)
        db.add(message)
    message.conversation_id = conversation_id
    apply_fields(message, payload, ("subject", "preview", "body_plain_text"))
    apply_fields(message, payload, ("delivered_at",), {"delivered_at": parse_datetime})
    if payload.get("from"):
        message.from_contact_id = _upsert_contact(db, payload["from"]).id
    if payload.get("created_at"):
        message.created_at = parse_datetime(payload["created_at"])
    message.updated_at = parse_datetime(payload.get("updated_at")) or utcnow()
    db.flush()

    if "recipients" in payload:
        db.execute(
            delete(MMessageRecipient)
            .where(MMessageRecipient.message_id == message.id)
            .execution_options(synchronize_session="fetch")
        )
        seen: set[tuple[str, str]] = set()
        for entry in payload.get("recipients") or []:
            contact = _upsert_contact(db, entry)
            key = (contact.id, entry.get("type") or "to")
            if key in seen:
                continue
            seen.add(key)
            db.add(MMessageRecipient(message_id=message.id, contact_id=key[0], recipient_type=key[1]))

    if "attachments" in payload:
        db.execute(
            delete(MAttachment)
            .where(MAttachment.message_id == message.id)
            .execution_options(synchronize_session="fetch")
        )
        for entry in payload.get("attachments") or []:
            db.add(
                MAttachment(
                    id=str(entry["id"]),
                    message_id=message.id,
                    filename=entry.get("filename"),
                    extension=entry.get("extension"),
                    size=entry.get("size"),
                    url=entry.get("url"),
                )
            )
    db.flush()
    publish(db, MessageChanged(message_id=message.id))


async def process_comment_upsert(db, item) -> None:
    payload = payload_of(item)
    conversation_id = optional_id(payload.get("conversation_id"))
    if not conversation_id:
        raise ValueError(f"Comment {item.external_id} has no conversation_id")
    _ensure_conversation(db, conversation_id)

    author_id = optional_id(payload.get("author_id"))
    if author_id and db.get(MUser, author_id) is None:
        db.add(MUser(id=author_id))

    comment = db.get(MConversationComment, item.external_id)
    if comment is None:
        comment = MConversationComment(id=item.external_id, conversation_id=conversation_id)
        db.add(comment)
    comment.conversation_id = conversation_id
    comment.author_id = author_id
    apply_fields(comment, payload, ("body",))
    if payload.get("created_at"):
        comment.created_at = parse_datetime(payload["created_at"])
    db.flush()
    publish(db, ConversationParticipantsChanged(conversation_id=conversation_id))
