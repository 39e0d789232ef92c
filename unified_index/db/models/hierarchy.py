"""Location and cost-group trees plus their object associations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unified_index.db.base import Base
from unified_index.db.enums import DEFAULT_ASSOCIATION_SOURCE


class Location(Base):
    """
    Physical hierarchy node: building (0) -> level (1) -> room (2).

    ``path`` is the dot-joined chain of ancestor ids ending with this node;
    ``search_text`` is the ' / '-joined chain of names.
    """

    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint("parent_id", "name", "type", name="uq_locations_parent_name_type"),
        CheckConstraint("depth BETWEEN 0 AND 2", name="depth_range"),
        Index("idx_locations_path", "path"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    depth: Mapped[int] = mapped_column(Integer, nullable=False)
    path: Mapped[str] = mapped_column(Text, default="", nullable=False)
    search_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    parent: Mapped["Location | None"] = relationship(remote_side="Location.id")

    @property
    def path_ids(self) -> list[int]:
        return [int(part) for part in self.path.split(".") if part]


class CostGroup(Base):
    """
    Cost code hierarchy node (codes 100-999).

    Parents are derived from the code: 456 -> 450 -> 400.
    """

    __tablename__ = "cost_groups"
    __table_args__ = (
        UniqueConstraint("code", name="uq_cost_groups_code"),
        CheckConstraint("code BETWEEN 100 AND 999", name="code_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("cost_groups.id", ondelete="CASCADE"), nullable=True
    )
    code: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    path: Mapped[str] = mapped_column(Text, default="", nullable=False)
    search_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    parent: Mapped["CostGroup | None"] = relationship(remote_side="CostGroup.id")

    @property
    def label(self) -> str:
        return f"{self.code} {self.name}" if self.name else str(self.code)


class _AssociationColumns:
    """Columns shared by object <-> node links (target is a tagged union)."""

    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_ASSOCIATION_SOURCE.value, nullable=False
    )
    source_tag_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class ObjectLocation(_AssociationColumns, Base):
    __tablename__ = "object_locations"
    __table_args__ = (
        UniqueConstraint(
            "location_id", "target_type", "target_id", "source", name="uq_object_locations_link"
        ),
        Index("idx_object_locations_target", "target_type", "target_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False
    )

    location: Mapped["Location"] = relationship()


class ObjectCostGroup(_AssociationColumns, Base):
    __tablename__ = "object_cost_groups"
    __table_args__ = (
        UniqueConstraint(
            "cost_group_id", "target_type", "target_id", "source", name="uq_object_cost_groups_link"
        ),
        Index("idx_object_cost_groups_target", "target_type", "target_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cost_group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cost_groups.id", ondelete="CASCADE"), nullable=False
    )

    cost_group: Mapped["CostGroup"] = relationship()
