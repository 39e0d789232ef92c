"""Ingestion queue enums."""

from enum import Enum


class QueueSource(str, Enum):
    """External systems that deliver records through the ingestion queue."""

    TEAMWORK = "teamwork"
    MISSIVE = "missive"
    CRAFT = "craft"


class QueueStatus(str, Enum):
    """
    Ingestion queue item lifecycle.

    pending -> processing -> completed
    processing -> pending (retry with backoff) | dead_letter (retries exhausted)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class CheckpointSource(str, Enum):
    """Sources that keep an incremental sync checkpoint."""

    TEAMWORK = "teamwork"
    MISSIVE = "missive"
    CRAFT = "craft"
    FILES = "files"
