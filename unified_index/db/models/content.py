"""Content-addressed store records."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from unified_index.db.base import Base
from unified_index.db.enums import DEFAULT_PROCESSING_STATUS, DEFAULT_UPLOAD_STATUS


class ContentRecord(Base):
    """
    One row per unique byte content, keyed by hash.

    Any number of files may reference a record; it is garbage collected once
    the last reference is removed.
    """

    __tablename__ = "file_contents"
    __table_args__ = (
        Index(
            "idx_file_contents_upload_queue",
            "upload_status",
            "last_status_change",
            postgresql_where=text("upload_status IN ('pending', 'error', 'uploading')"),
        ),
        Index("idx_file_contents_processing", "upload_status", "processing_status"),
    )

    content_hash: Mapped[str] = mapped_column(String(128), primary_key=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_UPLOAD_STATUS.value, nullable=False
    )
    processing_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_PROCESSING_STATUS.value, nullable=False
    )
    try_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_status_change: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
