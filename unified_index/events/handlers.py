"""Domain event handler registry."""

from __future__ import annotations

from typing import Callable, Mapping, Sequence

from sqlalchemy.orm import Session

from unified_index.events.types import (
    ConversationLabelsChanged,
    ConversationParticipantsChanged,
    DomainEvent,
    ExternalIdentityCreated,
    MessageChanged,
    TaskChanged,
    TaskTagsChanged,
)
from unified_index.services import (
    classification_service,
    identity_service,
    involvement_service,
)
from unified_index.types import ConversationTarget, TaskTarget

EventHandler = Callable[[Session, DomainEvent], object]


def rederive_task_associations(db: Session, event: TaskTagsChanged) -> None:
    classification_service.rederive_associations(db, TaskTarget(event.task_id))


def extract_task_type(db: Session, event: TaskTagsChanged) -> None:
    classification_service.extract_task_type(db, event.task_id)


def refresh_task_involvement(db: Session, event: TaskChanged) -> None:
    involvement_service.refresh_task_involvement(db, event.task_id)


def rederive_conversation_associations(db: Session, event: ConversationLabelsChanged) -> None:
    classification_service.rederive_associations(db, ConversationTarget(event.conversation_id))


def link_conversation_projects(db: Session, event: ConversationLabelsChanged) -> None:
    classification_service.link_projects_for_conversation(db, event.conversation_id)


def refresh_message_involvement(db: Session, event: MessageChanged) -> None:
    involvement_service.refresh_message_involvement(db, event.message_id)


def refresh_conversation_involvement(db: Session, event: ConversationParticipantsChanged) -> None:
    involvement_service.refresh_conversation_involvement(db, event.conversation_id)


def link_person(db: Session, event: ExternalIdentityCreated) -> None:
    identity_service.link_person_from_external_identity(db, event.source, event.external_id)


EVENT_HANDLERS: Mapping[type[DomainEvent], Sequence[EventHandler]] = {
    TaskTagsChanged: (rederive_task_associations, extract_task_type),
    TaskChanged: (refresh_task_involvement,),
    ConversationLabelsChanged: (rederive_conversation_associations, link_conversation_projects),
    MessageChanged: (refresh_message_involvement,),
    ConversationParticipantsChanged: (refresh_conversation_involvement,),
    ExternalIdentityCreated: (link_person,),
}
