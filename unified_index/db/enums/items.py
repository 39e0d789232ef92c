"""Unified item, person and involvement enums."""

from enum import Enum


class ItemType(str, Enum):
    """Item kinds in the unified index; each kind is one refresh segment."""

    TASK = "task"
    EMAIL = "email"
    CRAFT = "craft"
    FILE = "file"


class InvolvementType(str, Enum):
    """How a person is involved in an item."""

    ASSIGNEE = "assignee"
    CREATOR = "creator"
    UPDATER = "updater"
    SENDER = "sender"
    RECIPIENT = "recipient"
    CONVERSATION_ASSIGNEE = "conversation_assignee"
    CONVERSATION_AUTHOR = "conversation_author"
    CONVERSATION_COMMENTATOR = "conversation_commentator"


class PersonSource(str, Enum):
    """External identity kinds that link to a unified person."""

    TEAMWORK_USER = "teamwork_user"
    TEAMWORK_COMPANY = "teamwork_company"
    MISSIVE_CONTACT = "missive_contact"


class LinkOutcome(str, Enum):
    """Result of linking one external identity."""

    CREATED = "created"
    LINKED = "linked"
    SKIPPED = "skipped"


class TaskTypeSource(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class ProjectLinkSource(str, Enum):
    AUTO_LABEL = "auto_label"
    MANUAL = "manual"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
