"""Versioned application configuration rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from unified_index.db.base import Base
from unified_index.db.types import JSONType


class AppConfigVersion(Base):
    """An immutable configuration snapshot; the highest version is current."""

    __tablename__ = "app_config_versions"

    version: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    cost_group_prefixes: Mapped[list] = mapped_column(JSONType, nullable=False)
    location_prefix: Mapped[str] = mapped_column(String(50), nullable=False)
    public_email_addresses: Mapped[list] = mapped_column(JSONType, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
