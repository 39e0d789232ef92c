"""Content-addressed store enums."""

from enum import Enum


class UploadStatus(str, Enum):
    """Upload state: pending -> uploading -> uploaded, or error (retryable), or skipped (permanent)."""

    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    ERROR = "error"
    SKIPPED = "skipped"


class ProcessingStatus(str, Enum):
    """Extraction state: pending -> indexing -> done, or skipped, or error."""

    PENDING = "pending"
    INDEXING = "indexing"
    DONE = "done"
    SKIPPED = "skipped"
    ERROR = "error"
