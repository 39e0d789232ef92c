"""Configurable task types and the tag rules that assign them."""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unified_index.db.base import Base
from unified_index.db.enums import DEFAULT_TASK_TYPE_SOURCE


class TaskType(Base):
    __tablename__ = "task_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class TaskTypeRule(Base):
    """A tag name (case-insensitive) that assigns a task type."""

    __tablename__ = "task_type_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("task_types.id", ondelete="CASCADE"), nullable=False
    )
    tag_name: Mapped[str] = mapped_column(String(255), nullable=False)

    task_type: Mapped["TaskType"] = relationship()


class TaskExtension(Base):
    """Per-task enrichment; a manual type is never overwritten by rules."""

    __tablename__ = "task_extensions"

    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tw_tasks.id", ondelete="CASCADE"), primary_key=True
    )
    task_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("task_types.id", ondelete="SET NULL"), nullable=True
    )
    type_source: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_TASK_TYPE_SOURCE.value, nullable=False
    )

    task_type: Mapped["TaskType | None"] = relationship()
