"""Domain events emitted by writes to base records."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DomainEvent:
    """Marker base class for all domain events."""


@dataclass(frozen=True)
class TaskTagsChanged(DomainEvent):
    task_id: str


@dataclass(frozen=True)
class TaskChanged(DomainEvent):
    """Task fields, assignees or deletion state changed."""

    task_id: str


@dataclass(frozen=True)
class ConversationLabelsChanged(DomainEvent):
    conversation_id: str


@dataclass(frozen=True)
class ConversationParticipantsChanged(DomainEvent):
    """Conversation assignees, authors or commentators changed."""

    conversation_id: str


@dataclass(frozen=True)
class MessageChanged(DomainEvent):
    message_id: str


@dataclass(frozen=True)
class ExternalIdentityCreated(DomainEvent):
    """First sighting of a contact, user or company in a source system."""

    source: str
    external_id: str
