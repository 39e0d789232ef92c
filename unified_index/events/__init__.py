"""In-process domain events for synchronous re-derivation."""

from unified_index.events.types import (
    ConversationLabelsChanged,
    ConversationParticipantsChanged,
    DomainEvent,
    ExternalIdentityCreated,
    MessageChanged,
    TaskChanged,
    TaskTagsChanged,
)
from unified_index.events.dispatcher import publish

__all__ = [
    "DomainEvent",
    "TaskTagsChanged",
    "TaskChanged",
    "ConversationLabelsChanged",
    "ConversationParticipantsChanged",
    "MessageChanged",
    "ExternalIdentityCreated",
    "publish",
]
