"""Progress records for bulk re-derivation runs."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from unified_index.db.base import Base
from unified_index.db.enums import RunStatus


class OperationRun(Base):
    """One row per bulk invocation; runs of different types are tracked independently."""

    __tablename__ = "operation_runs"
    __table_args__ = (Index("idx_operation_runs_type_started", "run_type", "started_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=RunStatus.RUNNING.value, nullable=False
    )
    total_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    linked_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def progress_percent(self) -> float:
        if not self.total_count:
            return 0.0
        return round(self.processed_count / self.total_count * 100, 1)
