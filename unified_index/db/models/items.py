"""The aggregated item store and its per-segment refresh status."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from unified_index.db.base import Base
from unified_index.db.types import IntArray, JSONType, TextArray


class AggregatedItem(Base):
    """
    One row per (id, type) across tasks, messages, documents and files.

    Written only by the refresh process; the query engine reads nothing else.
    """

    __tablename__ = "unified_items"
    __table_args__ = (
        Index("idx_unified_items_sort_date", "sort_date", "id"),
        Index("idx_unified_items_type", "type"),
        Index("idx_unified_items_cost_group_code", "cost_group_code"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(20), primary_key=True)

    # Human fields
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    project_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    project: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    cost_group: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cost_group_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[str | None] = mapped_column(String(50), nullable=True)
    progress: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tasklist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    task_type_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    task_type_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    task_type_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    assigned_to: Mapped[list[str]] = mapped_column(TextArray, nullable=True)
    tags: Mapped[list[str]] = mapped_column(TextArray, nullable=True)
    creator: Mapped[str | None] = mapped_column(Text, nullable=True)
    conversation_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    recipients: Mapped[list[str]] = mapped_column(TextArray, nullable=True)
    attachments: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    attachment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_extension: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    sort_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Machine fields
    search_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    assignee_search_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    tag_names_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    location_ids: Mapped[list[int]] = mapped_column(IntArray, nullable=True)
    cost_group_ids: Mapped[list[int]] = mapped_column(IntArray, nullable=True)
    involved_emails: Mapped[list[str]] = mapped_column(TextArray, nullable=True)
    refreshed_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class RefreshStatus(Base):
    """Staleness tracker for one segment of the aggregated item store."""

    __tablename__ = "refresh_status"

    segment: Mapped[str] = mapped_column(String(20), primary_key=True)
    needs_refresh: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_refreshed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    refresh_interval_minutes: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
