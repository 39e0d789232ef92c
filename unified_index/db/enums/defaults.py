"""Centralized defaults for enums."""

from unified_index.db.enums.content import ProcessingStatus, UploadStatus
from unified_index.db.enums.hierarchy import AssociationSource
from unified_index.db.enums.items import TaskTypeSource
from unified_index.db.enums.queue import QueueStatus


DEFAULT_QUEUE_STATUS: QueueStatus = QueueStatus.PENDING
DEFAULT_UPLOAD_STATUS: UploadStatus = UploadStatus.PENDING
DEFAULT_PROCESSING_STATUS: ProcessingStatus = ProcessingStatus.PENDING
DEFAULT_ASSOCIATION_SOURCE: AssociationSource = AssociationSource.MANUAL
DEFAULT_TASK_TYPE_SOURCE: TaskTypeSource = TaskTypeSource.AUTO
