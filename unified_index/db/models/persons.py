"""Canonical persons, their external identity links and the involvement index."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unified_index.db.base import Base


class UnifiedPerson(Base):
    """Canonical identity that merges same-email identities across sources."""

    __tablename__ = "unified_persons"
    __table_args__ = (Index("idx_unified_persons_email", "primary_email"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    primary_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_company: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    links: Mapped[list["PersonLink"]] = relationship(
        back_populates="person", cascade="all, delete-orphan"
    )


class PersonLink(Base):
    """Ties one external identity to exactly one unified person."""

    __tablename__ = "unified_person_links"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_person_links_identity"),
        Index("idx_person_links_person", "person_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    person_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("unified_persons.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    link_type: Mapped[str] = mapped_column(String(30), default="auto_email", nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    person: Mapped["UnifiedPerson"] = relationship(back_populates="links")


class InvolvementRecord(Base):
    """Who is involved in which item, and how. Fully rebuildable."""

    __tablename__ = "item_involved_persons"
    __table_args__ = (Index("idx_involvement_person", "person_id", "item_type"),)

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    person_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("unified_persons.id", ondelete="CASCADE"), primary_key=True
    )
    involvement_type: Mapped[str] = mapped_column(String(40), primary_key=True)
