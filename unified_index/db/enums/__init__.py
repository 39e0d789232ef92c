"""Enum definitions for application constants."""

from unified_index.db.enums.content import ProcessingStatus, UploadStatus
from unified_index.db.enums.defaults import (
    DEFAULT_ASSOCIATION_SOURCE,
    DEFAULT_PROCESSING_STATUS,
    DEFAULT_QUEUE_STATUS,
    DEFAULT_TASK_TYPE_SOURCE,
    DEFAULT_UPLOAD_STATUS,
)
from unified_index.db.enums.hierarchy import AssociationSource, LocationType, TargetType
from unified_index.db.enums.items import (
    InvolvementType,
    ItemType,
    LinkOutcome,
    PersonSource,
    ProjectLinkSource,
    SortOrder,
    TaskTypeSource,
)
from unified_index.db.enums.operations import RunStatus, RunType
from unified_index.db.enums.queue import CheckpointSource, QueueSource, QueueStatus

__all__ = [
    "AssociationSource",
    "CheckpointSource",
    "DEFAULT_ASSOCIATION_SOURCE",
    "DEFAULT_PROCESSING_STATUS",
    "DEFAULT_QUEUE_STATUS",
    "DEFAULT_TASK_TYPE_SOURCE",
    "DEFAULT_UPLOAD_STATUS",
    "InvolvementType",
    "ItemType",
    "LinkOutcome",
    "LocationType",
    "PersonSource",
    "ProcessingStatus",
    "ProjectLinkSource",
    "QueueSource",
    "QueueStatus",
    "RunStatus",
    "RunType",
    "SortOrder",
    "TargetType",
    "TaskTypeSource",
    "UploadStatus",
]
