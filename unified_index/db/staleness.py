"""
Staleness tracking for the aggregated item store.

Every table that feeds a projection maps to the segments it affects. Session
hooks flag those segments as needing refresh once per flush or DML statement
(not once per row), inside the same transaction as the write.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from sqlalchemy import event, update
from sqlalchemy.orm import ORMExecuteState, Session, sessionmaker

from unified_index.db.enums import ItemType
from unified_index.db.models.items import RefreshStatus

logger = logging.getLogger(__name__)

_TASK = ItemType.TASK.value
_EMAIL = ItemType.EMAIL.value
_CRAFT = ItemType.CRAFT.value
_FILE = ItemType.FILE.value

SEGMENT_DEPENDENCIES: Mapping[str, frozenset[str]] = {
    # Teamwork
    "tw_tasks": frozenset({_TASK}),
    "tw_tags": frozenset({_TASK}),
    "tw_task_tags": frozenset({_TASK}),
    "tw_task_assignees": frozenset({_TASK}),
    "tw_users": frozenset({_TASK}),
    "tw_tasklists": frozenset({_TASK}),
    "tw_projects": frozenset({_TASK, _EMAIL, _FILE}),
    "tw_companies": frozenset({_TASK, _EMAIL, _FILE}),
    "task_extensions": frozenset({_TASK}),
    "task_types": frozenset({_TASK}),
    # Missive
    "m_conversations": frozenset({_EMAIL}),
    "m_messages": frozenset({_EMAIL}),
    "m_contacts": frozenset({_EMAIL}),
    "m_users": frozenset({_EMAIL}),
    "m_attachments": frozenset({_EMAIL}),
    "m_message_recipients": frozenset({_EMAIL}),
    "m_conversation_authors": frozenset({_EMAIL}),
    "m_conversation_comments": frozenset({_EMAIL}),
    "m_conversation_assignees": frozenset({_EMAIL}),
    "m_conversation_labels": frozenset({_EMAIL}),
    "m_shared_labels": frozenset({_EMAIL}),
    "project_conversations": frozenset({_EMAIL}),
    # Craft / files
    "craft_documents": frozenset({_CRAFT}),
    "files": frozenset({_FILE}),
    "file_contents": frozenset({_FILE}),
    # Hierarchies feed every item kind that can carry an association
    "locations": frozenset({_TASK, _EMAIL, _FILE}),
    "cost_groups": frozenset({_TASK, _EMAIL, _FILE}),
    "object_locations": frozenset({_TASK, _EMAIL, _FILE}),
    "object_cost_groups": frozenset({_TASK, _EMAIL, _FILE}),
}

_INFO_KEY = "stale_segments_marked"


def segments_for_tables(table_names: Iterable[str]) -> set[str]:
    segments: set[str] = set()
    for name in table_names:
        segments.update(SEGMENT_DEPENDENCIES.get(name, ()))
    return segments


def mark_segments_stale(session: Session, segments: Iterable[str]) -> set[str]:
    """
    Flag segments as needing refresh within the session's transaction.

    Segments already flagged earlier in the same transaction are skipped.
    Returns the segments flagged by this call.
    """
    already = session.info.setdefault(_INFO_KEY, set())
    pending = set(segments) - already
    if not pending:
        return set()
    # Core statement on the connection: does not re-enter the ORM hooks
    session.connection().execute(
        update(RefreshStatus.__table__)
        .where(
            RefreshStatus.__table__.c.segment.in_(sorted(pending)),
            RefreshStatus.__table__.c.needs_refresh.is_(False),
        )
        .values(needs_refresh=True)
    )
    already.update(pending)
    logger.debug("Marked segments stale: %s", ", ".join(sorted(pending)))
    return pending


def _before_flush(session: Session, flush_context, instances) -> None:
    tables = {
        obj.__table__.name
        for obj in (*session.new, *session.dirty, *session.deleted)
        if getattr(obj, "__table__", None) is not None
    }
    segments = segments_for_tables(tables)
    if segments:
        mark_segments_stale(session, segments)


def _on_orm_execute(orm_execute_state: ORMExecuteState) -> None:
    if not (
        orm_execute_state.is_insert
        or orm_execute_state.is_update
        or orm_execute_state.is_delete
    ):
        return
    table = getattr(orm_execute_state.statement, "table", None)
    name = getattr(table, "name", None)
    if not name:
        return
    segments = segments_for_tables([name])
    if segments:
        mark_segments_stale(orm_execute_state.session, segments)


def _after_transaction_end(session: Session, transaction) -> None:
    session.info.pop(_INFO_KEY, None)


def install_staleness_tracking(session_factory: sessionmaker) -> None:
    """Attach the staleness hooks to every session the factory creates."""
    if event.contains(session_factory, "before_flush", _before_flush):
        return
    event.listen(session_factory, "before_flush", _before_flush)
    event.listen(session_factory, "do_orm_execute", _on_orm_execute)
    event.listen(session_factory, "after_transaction_end", _after_transaction_end)
