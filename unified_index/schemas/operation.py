"""Pydantic schemas for bulk operation runs."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class OperationStarted(BaseModel):
    run_id: UUID


class OperationRunRead(BaseModel):
    """Run progress; counters are flushed periodically while running."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    run_type: str
    status: str
    total_count: int
    processed_count: int
    created_count: int
    linked_count: int
    skipped_count: int
    progress_percent: float
    error_message: str | None
    started_at: datetime
    completed_at: datetime | None
