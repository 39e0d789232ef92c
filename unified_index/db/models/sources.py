"""
Base records mirrored from the external sources.

Primary keys are the external ids delivered by the adapters, stored as
strings so that every source shares one key shape.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unified_index.db.base import Base
from unified_index.db.enums import ProjectLinkSource


# =============================================================================
# Teamwork (project management)
# =============================================================================

tw_task_tags = Table(
    "tw_task_tags",
    Base.metadata,
    Column("task_id", String(64), ForeignKey("tw_tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(64), ForeignKey("tw_tags.id", ondelete="CASCADE"), primary_key=True),
)

tw_task_assignees = Table(
    "tw_task_assignees",
    Base.metadata,
    Column("task_id", String(64), ForeignKey("tw_tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(64), ForeignKey("tw_users.id", ondelete="CASCADE"), primary_key=True),
)


class TwCompany(Base):
    __tablename__ = "tw_companies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email_one: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TwUser(Base):
    __tablename__ = "tw_users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tw_companies.id", ondelete="SET NULL"), nullable=True
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class TwTag(Base):
    __tablename__ = "tw_tags"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class TwProject(Base):
    __tablename__ = "tw_projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tw_companies.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    company: Mapped["TwCompany | None"] = relationship()


class TwTasklist(Base):
    __tablename__ = "tw_tasklists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tw_projects.id", ondelete="CASCADE"), nullable=True
    )


class TwTask(Base):
    """A project-management task; soft-deleted tasks keep their row."""

    __tablename__ = "tw_tasks"
    __table_args__ = (
        Index("idx_tw_tasks_project", "project_id"),
        Index("idx_tw_tasks_updated", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(50), nullable=True)
    progress: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    project_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tw_projects.id", ondelete="SET NULL"), nullable=True
    )
    tasklist_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tw_tasklists.id", ondelete="SET NULL"), nullable=True
    )
    created_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    project: Mapped["TwProject | None"] = relationship()
    tasklist: Mapped["TwTasklist | None"] = relationship()
    tags: Mapped[list["TwTag"]] = relationship(secondary=tw_task_tags, order_by="TwTag.name")
    assignees: Mapped[list["TwUser"]] = relationship(secondary=tw_task_assignees)


# =============================================================================
# Missive (email / collaboration)
# =============================================================================


class MContact(Base):
    __tablename__ = "m_contacts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)


class MUser(Base):
    __tablename__ = "m_users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("m_contacts.id", ondelete="SET NULL"), nullable=True
    )


class MSharedLabel(Base):
    __tablename__ = "m_shared_labels"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class MConversation(Base):
    __tablename__ = "m_conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class MMessage(Base):
    __tablename__ = "m_messages"
    __table_args__ = (Index("idx_m_messages_conversation", "conversation_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_conversations.id", ondelete="CASCADE"), nullable=False
    )
    subject: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_plain_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_contact_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("m_contacts.id", ondelete="SET NULL"), nullable=True
    )
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    conversation: Mapped["MConversation"] = relationship()
    from_contact: Mapped["MContact | None"] = relationship()


class MAttachment(Base):
    __tablename__ = "m_attachments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    message_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_messages.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str | None] = mapped_column(String(500), nullable=True)
    extension: Mapped[str | None] = mapped_column(String(50), nullable=True)
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)


class MMessageRecipient(Base):
    __tablename__ = "m_message_recipients"

    message_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_messages.id", ondelete="CASCADE"), primary_key=True
    )
    contact_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_contacts.id", ondelete="CASCADE"), primary_key=True
    )
    recipient_type: Mapped[str] = mapped_column(String(10), primary_key=True, default="to")


class MConversationAuthor(Base):
    __tablename__ = "m_conversation_authors"

    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_conversations.id", ondelete="CASCADE"), primary_key=True
    )
    contact_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_contacts.id", ondelete="CASCADE"), primary_key=True
    )


class MConversationComment(Base):
    __tablename__ = "m_conversation_comments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_conversations.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("m_users.id", ondelete="SET NULL"), nullable=True
    )
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class MConversationAssignee(Base):
    __tablename__ = "m_conversation_assignees"

    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_users.id", ondelete="CASCADE"), primary_key=True
    )


class MConversationLabel(Base):
    __tablename__ = "m_conversation_labels"

    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_conversations.id", ondelete="CASCADE"), primary_key=True
    )
    label_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_shared_labels.id", ondelete="CASCADE"), primary_key=True
    )


# =============================================================================
# Craft documents and files
# =============================================================================


class CraftDocument(Base):
    __tablename__ = "craft_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    markdown_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    folder_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


class File(Base):
    """A filesystem path pointing at a content-addressed record."""

    __tablename__ = "files"
    __table_args__ = (
        UniqueConstraint("full_path", name="uq_files_full_path"),
        Index("idx_files_content_hash", "content_hash"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_path: Mapped[str] = mapped_column(String(2000), nullable=False)
    content_hash: Mapped[str] = mapped_column(
        String(128), ForeignKey("file_contents.content_hash"), nullable=False
    )
    project_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tw_projects.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def filename(self) -> str:
        return self.full_path.rstrip("/").rsplit("/", 1)[-1]


class ProjectConversation(Base):
    """Project <-> conversation link; ``auto_label`` rows are derived from labels."""

    __tablename__ = "project_conversations"

    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tw_projects.id", ondelete="CASCADE"), primary_key=True
    )
    conversation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("m_conversations.id", ondelete="CASCADE"), primary_key=True
    )
    source: Mapped[str] = mapped_column(
        String(20), default=ProjectLinkSource.MANUAL.value, nullable=False
    )
    source_label_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
