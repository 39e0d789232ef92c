"""Ingestion queue, sync checkpoints and processing statistics."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from unified_index.db.base import Base
from unified_index.db.enums import DEFAULT_QUEUE_STATUS
from unified_index.db.types import JSONType


class QueueItem(Base):
    """
    One delivered change from an external source.

    Created by adapters, mutated only by queue workers, and deleted only by
    the retention cleanup of completed items.
    """

    __tablename__ = "queue_items"
    __table_args__ = (
        Index(
            "idx_queue_items_pending",
            "status",
            "next_retry_at",
            "created_at",
            postgresql_where=text("status = 'pending'"),
        ),
        Index("idx_queue_items_source_status", "source", "status"),
        Index("idx_queue_items_processed", "processed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_QUEUE_STATUS.value, nullable=False
    )
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    next_retry_at: Mapped[datetime | None] = mapped_column(nullable=True)
    worker_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processing_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class Checkpoint(Base):
    """Per-source incremental sync position."""

    __tablename__ = "checkpoints"

    source: Mapped[str] = mapped_column(String(20), primary_key=True)
    last_event_time: Mapped[datetime | None] = mapped_column(nullable=True)
    last_cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ProcessingStat(Base):
    """Hourly per-source queue throughput counters."""

    __tablename__ = "processing_stats"

    hour: Mapped[datetime] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(String(20), primary_key=True)
    completed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_processing_ms: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
