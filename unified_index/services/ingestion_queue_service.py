"""Ingestion queue service - durable per-source job queue with retry, backoff and dead-lettering.

Claims use ``SELECT ... FOR UPDATE SKIP LOCKED`` so any number of workers can
dequeue concurrently and each receives a disjoint batch without waiting on
the others.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.core.structured_logging import build_log_context
from unified_index.db.enums import QueueSource, QueueStatus
from unified_index.db.models import ProcessingStat, QueueItem
from unified_index.utils.datetime_parsing import as_utc, utcnow

logger = logging.getLogger(__name__)

# Delay before the next attempt, indexed by retry_count; the last entry repeats.
RETRY_BACKOFF_SCHEDULE: tuple[timedelta, ...] = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=15),
    timedelta(minutes=30),
    timedelta(hours=1),
)


# =============================================================================
# Exceptions
# =============================================================================


class IngestionQueueError(Exception):
    """Base exception for ingestion queue operations."""

    pass


class QueueItemNotFoundError(IngestionQueueError):
    """Queue item does not exist."""

    pass


class InvalidQueueSourceError(IngestionQueueError):
    """Source is not one of the known adapters."""

    pass


# =============================================================================
# Helpers
# =============================================================================


def compute_retry_delay(retry_count: int) -> timedelta:
    """Backoff for the attempt after ``retry_count`` failures: 1m, 5m, 15m, 30m, then 1h."""
    index = min(max(retry_count, 0), len(RETRY_BACKOFF_SCHEDULE) - 1)
    return RETRY_BACKOFF_SCHEDULE[index]


def _validate_source(source: str) -> str:
    try:
        return QueueSource(source).value
    except ValueError as exc:
        raise InvalidQueueSourceError(f"Unknown queue source: {source}") from exc


def _get_item_or_raise(db: Session, item_id: int) -> QueueItem:
    item = db.get(QueueItem, item_id)
    if not item:
        raise QueueItemNotFoundError(f"Queue item {item_id} not found")
    return item


def _record_stat(
    db: Session,
    source: str,
    *,
    completed: int = 0,
    failed: int = 0,
    processing_ms: int = 0,
    now: datetime | None = None,
) -> None:
    """Add to the hourly throughput counters for ``source``."""
    hour = (now or utcnow()).replace(minute=0, second=0, microsecond=0)
    stat = db.execute(
        select(ProcessingStat).where(
            ProcessingStat.hour == hour,
            ProcessingStat.source == source,
        )
    ).scalar_one_or_none()
    if stat is None:
        stat = ProcessingStat(
            hour=hour,
            source=source,
            completed_count=0,
            failed_count=0,
            total_processing_ms=0,
        )
        db.add(stat)
    stat.completed_count += completed
    stat.failed_count += failed
    stat.total_processing_ms += processing_ms


# =============================================================================
# Producer API
# =============================================================================


def enqueue(
    db: Session,
    source: str,
    event_type: str,
    external_id: str,
    payload: dict | None = None,
    max_retries: int | None = None,
) -> QueueItem:
    """Add a pending item for an adapter-delivered change."""
    item = QueueItem(
        source=_validate_source(source),
        event_type=event_type,
        external_id=str(external_id),
        payload=payload or {},
        status=QueueStatus.PENDING.value,
        retry_count=0,
        max_retries=settings.QUEUE_DEFAULT_MAX_RETRIES if max_retries is None else max_retries,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


# =============================================================================
# Worker API
# =============================================================================


def dequeue(
    db: Session,
    worker_id: str,
    max_items: int = 10,
    source: str | None = None,
    now: datetime | None = None,
) -> list[QueueItem]:
    """
    Atomically claim up to ``max_items`` pending, retry-due items.

    Rows locked by another claimant are skipped, so the same item is never
    returned to two concurrent callers. Claimed items move to ``processing``
    stamped with ``worker_id`` and ``processing_started_at``.
    """
    if max_items <= 0:
        return []
    now = now or utcnow()
    query = (
        select(QueueItem)
        .where(
            QueueItem.status == QueueStatus.PENDING.value,
            or_(QueueItem.next_retry_at.is_(None), QueueItem.next_retry_at <= now),
        )
        .order_by(QueueItem.created_at, QueueItem.id)
        .limit(max_items)
        .with_for_update(skip_locked=True)
    )
    if source:
        query = query.where(QueueItem.source == _validate_source(source))

    items = list(db.execute(query).scalars().all())
    for item in items:
        item.status = QueueStatus.PROCESSING.value
        item.worker_id = worker_id
        item.processing_started_at = now
    db.commit()

    if items:
        logger.info(
            "Claimed %d queue item(s)",
            len(items),
            extra=build_log_context(worker_id=worker_id, source=source),
        )
    return items


def get_item(db: Session, item_id: int) -> QueueItem | None:
    return db.get(QueueItem, item_id)


def mark_completed(
    db: Session,
    item_id: int,
    processing_time_ms: int | None = None,
) -> QueueItem:
    """Mark an item completed and record its processing time."""
    item = _get_item_or_raise(db, item_id)
    now = utcnow()
    if processing_time_ms is None and item.processing_started_at:
        elapsed = now - as_utc(item.processing_started_at)
        processing_time_ms = max(int(elapsed.total_seconds() * 1000), 0)

    item.status = QueueStatus.COMPLETED.value
    item.processed_at = now
    item.processing_time_ms = processing_time_ms
    item.error_message = None
    _record_stat(db, item.source, completed=1, processing_ms=processing_time_ms or 0, now=now)
    db.commit()
    db.refresh(item)
    return item


def mark_failed(
    db: Session,
    item_id: int,
    error: str,
    retry: bool = True,
) -> QueueItem:
    """
    Record a failed attempt.

    With ``retry`` and retries left, the item returns to ``pending`` with
    ``next_retry_at`` pushed out by the backoff schedule. Otherwise it moves to
    ``dead_letter`` and is never dequeued again.
    """
    item = _get_item_or_raise(db, item_id)
    now = utcnow()
    item.error_message = error

    if retry and item.retry_count < item.max_retries:
        item.next_retry_at = now + compute_retry_delay(item.retry_count)
        item.retry_count += 1
        item.status = QueueStatus.PENDING.value
        item.worker_id = None
        item.processing_started_at = None
    else:
        item.status = QueueStatus.DEAD_LETTER.value
        item.processed_at = now
        logger.warning(
            "Queue item dead-lettered after %d retries",
            item.retry_count,
            extra=build_log_context(source=item.source, item_id=item.id),
        )

    _record_stat(db, item.source, failed=1, now=now)
    db.commit()
    db.refresh(item)
    return item


# =============================================================================
# Maintenance
# =============================================================================


def reset_stuck_items(db: Session, timeout_minutes: int | None = None) -> int:
    """Return ``processing`` items older than the timeout (presumed crashed worker) to ``pending``."""
    timeout = settings.QUEUE_STUCK_TIMEOUT_MINUTES if timeout_minutes is None else timeout_minutes
    cutoff = utcnow() - timedelta(minutes=timeout)
    result = db.execute(
        update(QueueItem)
        .where(
            QueueItem.status == QueueStatus.PROCESSING.value,
            QueueItem.processing_started_at < cutoff,
        )
        .values(
            status=QueueStatus.PENDING.value,
            worker_id=None,
            processing_started_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning("Reset %d stuck queue item(s)", result.rowcount)
    return result.rowcount


def cleanup_old_items(db: Session, days: int | None = None) -> int:
    """Purge ``completed`` items processed more than ``days`` ago."""
    retention = settings.QUEUE_RETENTION_DAYS if days is None else days
    cutoff = utcnow() - timedelta(days=retention)
    result = db.execute(
        delete(QueueItem)
        .where(
            QueueItem.status == QueueStatus.COMPLETED.value,
            QueueItem.processed_at < cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def retry_dead_letter(db: Session, item_id: int) -> QueueItem:
    """Administrative requeue of a dead-lettered item with its retry count reset."""
    item = _get_item_or_raise(db, item_id)
    if item.status != QueueStatus.DEAD_LETTER.value:
        raise IngestionQueueError(f"Queue item {item_id} is not dead-lettered")
    item.status = QueueStatus.PENDING.value
    item.retry_count = 0
    item.next_retry_at = None
    item.worker_id = None
    item.processing_started_at = None
    item.processed_at = None
    db.commit()
    db.refresh(item)
    return item


def get_queue_stats(db: Session) -> dict[str, dict[str, int]]:
    """Item counts by status for each source."""
    rows = db.execute(
        select(QueueItem.source, QueueItem.status, func.count())
        .group_by(QueueItem.source, QueueItem.status)
    ).all()
    stats: dict[str, dict[str, int]] = {
        source.value: {status.value: 0 for status in QueueStatus} for source in QueueSource
    }
    for source, status, count in rows:
        stats.setdefault(source, {s.value: 0 for s in QueueStatus})[status] = count
    return stats
