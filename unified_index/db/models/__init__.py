"""SQLAlchemy ORM models."""

from unified_index.db.models.config import AppConfigVersion
from unified_index.db.models.content import ContentRecord
from unified_index.db.models.hierarchy import CostGroup, Location, ObjectCostGroup, ObjectLocation
from unified_index.db.models.items import AggregatedItem, RefreshStatus
from unified_index.db.models.operations import OperationRun
from unified_index.db.models.persons import InvolvementRecord, PersonLink, UnifiedPerson
from unified_index.db.models.queue import Checkpoint, ProcessingStat, QueueItem
from unified_index.db.models.sources import (
    CraftDocument,
    File,
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
    ProjectConversation,
    TwCompany,
    TwProject,
    TwTag,
    TwTask,
    TwTasklist,
    TwUser,
    tw_task_assignees,
    tw_task_tags,
)
from unified_index.db.models.task_types import TaskExtension, TaskType, TaskTypeRule

__all__ = [
    "AggregatedItem",
    "AppConfigVersion",
    "Checkpoint",
    "ContentRecord",
    "CostGroup",
    "CraftDocument",
    "File",
    "InvolvementRecord",
    "Location",
    "MAttachment",
    "MContact",
    "MConversation",
    "MConversationAssignee",
    "MConversationAuthor",
    "MConversationComment",
    "MConversationLabel",
    "MMessage",
    "MMessageRecipient",
    "MSharedLabel",
    "MUser",
    "ObjectCostGroup",
    "ObjectLocation",
    "OperationRun",
    "PersonLink",
    "ProcessingStat",
    "ProjectConversation",
    "QueueItem",
    "RefreshStatus",
    "TaskExtension",
    "TaskType",
    "TaskTypeRule",
    "TwCompany",
    "TwProject",
    "TwTag",
    "TwTask",
    "TwTasklist",
    "TwUser",
    "UnifiedPerson",
    "tw_task_assignees",
    "tw_task_tags",
]
