"""Aggregation service - keep ``unified_items`` in step with the base records.

Each item type is one segment with its own ``RefreshStatus`` row. Writes to
projection dependencies flag the segment (see ``db.staleness``); a scheduler
calls ``refresh_stale`` to rebuild flagged or expired segments.

Refresh is single-writer: a transaction-scoped advisory lock on PostgreSQL,
a process-local lock elsewhere. A refresh that cannot take the lock returns
without doing anything.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator

from sqlalchemy import delete, insert, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.core.structured_logging import build_log_context
from unified_index.db.enums import ItemType
from unified_index.db.models import AggregatedItem, RefreshStatus
from unified_index.services import projection_service
from unified_index.utils.datetime_parsing import as_utc, utcnow

logger = logging.getLogger(__name__)

REFRESH_LOCK_ID = 7_301_559_120
SEGMENTS: tuple[str, ...] = tuple(item_type.value for item_type in ItemType)

_items = AggregatedItem.__table__
_MERGE_COLUMNS = [column.key for column in _items.columns if column.key != "refreshed_at"]
_DELETE_CHUNK = 500

_local_refresh_lock = threading.Lock()


# =============================================================================
# Status rows and locking
# =============================================================================


def ensure_refresh_status_rows(db: Session) -> list[RefreshStatus]:
    """Create any missing segment rows (flagged as needing refresh)."""
    existing = {status.segment: status for status in db.execute(select(RefreshStatus)).scalars()}
    for segment in SEGMENTS:
        if segment not in existing:
            status = RefreshStatus(
                segment=segment,
                needs_refresh=True,
                refresh_interval_minutes=settings.REFRESH_INTERVAL_MINUTES,
            )
            db.add(status)
            existing[segment] = status
    db.flush()
    return [existing[segment] for segment in SEGMENTS]


def get_refresh_status(db: Session) -> list[RefreshStatus]:
    return list(db.execute(select(RefreshStatus).order_by(RefreshStatus.segment)).scalars())


@contextmanager
def refresh_lock(db: Session) -> Iterator[bool]:
    """Yield True when this caller is the single refresh writer."""
    if db.get_bind().dialect.name == "postgresql":
        # Released when the surrounding transaction ends
        acquired = db.execute(
            text("SELECT pg_try_advisory_xact_lock(:lock_id)"),
            {"lock_id": REFRESH_LOCK_ID},
        ).scalar()
        yield bool(acquired)
        return

    acquired = _local_refresh_lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            _local_refresh_lock.release()


# =============================================================================
# Merge / rebuild
# =============================================================================


def _comparable(value):
    if isinstance(value, datetime):
        return as_utc(value)
    if value is None:
        return None
    return value


def _row_differs(current: dict, projected: dict) -> bool:
    for key in _MERGE_COLUMNS:
        old = current.get(key)
        new = projected.get(key)
        if isinstance(new, list) and not new and old in (None, []):
            continue
        if _comparable(old) != _comparable(new):
            return True
    return False


def _insert_rows(db: Session, rows: list[dict], now: datetime) -> None:
    if rows:
        db.execute(insert(_items), [{**row, "refreshed_at": now} for row in rows])


def merge_segment_rows(db: Session, segment: str, rows: list[dict]) -> dict[str, int]:
    """
    Diff-merge projected rows into the store: insert new, update changed,
    delete vanished. Readers see the previous rows until commit.
    """
    now = utcnow()
    current = {
        row["id"]: row
        for row in db.execute(select(_items).where(_items.c.type == segment)).mappings()
    }
    projected_ids = set()
    to_insert: list[dict] = []
    updated = 0
    for row in rows:
        projected_ids.add(row["id"])
        existing = current.get(row["id"])
        if existing is None:
            to_insert.append(row)
        elif _row_differs(existing, row):
            values = {key: row[key] for key in _MERGE_COLUMNS if key not in ("id", "type")}
            db.execute(
                update(_items)
                .where(_items.c.id == row["id"], _items.c.type == segment)
                .values(**values, refreshed_at=now)
            )
            updated += 1
    _insert_rows(db, to_insert, now)

    vanished = sorted(set(current) - projected_ids)
    for start in range(0, len(vanished), _DELETE_CHUNK):
        chunk = vanished[start:start + _DELETE_CHUNK]
        db.execute(delete(_items).where(_items.c.type == segment, _items.c.id.in_(chunk)))

    return {"inserted": len(to_insert), "updated": updated, "deleted": len(vanished)}


def rebuild_segment_rows(db: Session, segment: str, rows: list[dict]) -> dict[str, int]:
    """Replace every row of the segment."""
    deleted = db.execute(delete(_items).where(_items.c.type == segment)).rowcount
    _insert_rows(db, rows, utcnow())
    return {"inserted": len(rows), "updated": 0, "deleted": deleted or 0}


def _refresh_segment_locked(db: Session, segment: str, concurrent: bool) -> dict[str, int]:
    ensure_refresh_status_rows(db)
    # Row lock: staleness marks from writers wait for this refresh to commit
    status = db.execute(
        select(RefreshStatus).where(RefreshStatus.segment == segment).with_for_update()
    ).scalar_one()

    rows = projection_service.project_segment(db, segment)
    log_context = build_log_context(segment=segment)

    if concurrent and status.last_refreshed_at is not None:
        try:
            with db.begin_nested():
                stats = merge_segment_rows(db, segment, rows)
        except SQLAlchemyError:
            logger.exception("Concurrent refresh failed; falling back to blocking rebuild", extra=log_context)
            stats = rebuild_segment_rows(db, segment, rows)
    else:
        stats = rebuild_segment_rows(db, segment, rows)

    status.needs_refresh = False
    status.last_refreshed_at = utcnow()
    db.flush()
    logger.info(
        "Refreshed segment %s: %d inserted, %d updated, %d deleted",
        segment,
        stats["inserted"],
        stats["updated"],
        stats["deleted"],
        extra=log_context,
    )
    return stats


# =============================================================================
# Public API
# =============================================================================


def refresh_segment(db: Session, segment: str, concurrent: bool = True) -> bool:
    """Refresh one segment. Returns False when another refresh holds the lock."""
    segment = ItemType(segment).value
    with refresh_lock(db) as acquired:
        if not acquired:
            logger.info("Refresh already running; skipping", extra=build_log_context(segment=segment))
            db.rollback()
            return False
        try:
            _refresh_segment_locked(db, segment, concurrent)
            db.commit()
        except Exception:
            db.rollback()
            raise
    return True


def refresh_all(db: Session, concurrent: bool = True) -> list[tuple[str, bool]]:
    """Refresh every segment in one transaction."""
    with refresh_lock(db) as acquired:
        if not acquired:
            logger.info("Refresh already running; skipping")
            db.rollback()
            return [(segment, False) for segment in SEGMENTS]
        try:
            for segment in SEGMENTS:
                _refresh_segment_locked(db, segment, concurrent)
            db.commit()
        except Exception:
            db.rollback()
            raise
    return [(segment, True) for segment in SEGMENTS]


def is_segment_stale(status: RefreshStatus, now: datetime) -> bool:
    if status.needs_refresh or status.last_refreshed_at is None:
        return True
    interval = timedelta(minutes=status.refresh_interval_minutes)
    return as_utc(status.last_refreshed_at) + interval <= now


def refresh_stale(db: Session, now: datetime | None = None) -> list[tuple[str, bool]]:
    """
    Refresh segments that are flagged, never refreshed, or older than their interval.

    Returns ``(segment, refreshed)`` for every segment.
    """
    now = now or utcnow()
    with refresh_lock(db) as acquired:
        if not acquired:
            logger.info("Refresh already running; skipping")
            db.rollback()
            return [(segment, False) for segment in SEGMENTS]
        try:
            statuses = ensure_refresh_status_rows(db)
            stale = [status.segment for status in statuses if is_segment_stale(status, now)]
            for segment in stale:
                _refresh_segment_locked(db, segment, concurrent=True)
            db.commit()
        except Exception:
            db.rollback()
            raise
    return [(segment, segment in stale) for segment in SEGMENTS]
