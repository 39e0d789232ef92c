"""Pydantic schemas for the ingestion queue and scheduled maintenance."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from unified_index.db.enums import QueueSource


class EnqueueRequest(BaseModel):
    """A change delivered by a source adapter."""
    source: QueueSource
    event_type: str = Field(min_length=1, max_length=100)
    external_id: str = Field(min_length=1, max_length=255)
    payload: dict = {}
    max_retries: int | None = Field(default=None, ge=0)


class QueueItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    event_type: str
    external_id: str
    status: str
    retry_count: int
    max_retries: int
    next_retry_at: datetime | None
    worker_id: str | None
    error_message: str | None
    created_at: datetime
    processed_at: datetime | None


class SourceSyncStatusRead(BaseModel):
    source: str
    last_event_time: datetime | None
    last_cursor: str | None
    checkpoint_updated_at: datetime | None
    pending_count: int
    processing_count: int
    failed_count: int


class SegmentRefreshResult(BaseModel):
    segment: str
    refreshed: bool


class RefreshResponse(BaseModel):
    segments: list[SegmentRefreshResult]


class QueueMaintenanceResponse(BaseModel):
    stuck_reset: int
    completed_purged: int


class ContentMaintenanceResponse(BaseModel):
    uploads_reset: int
    indexing_reset: int
    stats: dict[str, dict[str, int]]
