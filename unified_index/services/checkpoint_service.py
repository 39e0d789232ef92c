"""Checkpoint service - per-source incremental sync positions and sync status."""

from datetime import datetime, timezone
from typing import TypedDict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from unified_index.db.enums import CheckpointSource, QueueStatus
from unified_index.db.models import Checkpoint, QueueItem
from unified_index.utils.datetime_parsing import utcnow

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SourceSyncStatus(TypedDict):
    source: str
    last_event_time: datetime | None
    last_cursor: str | None
    checkpoint_updated_at: datetime | None
    pending_count: int
    processing_count: int
    failed_count: int


def _validate_source(source: str) -> str:
    return CheckpointSource(source).value


def get_checkpoint(db: Session, source: str) -> Checkpoint | None:
    return db.get(Checkpoint, _validate_source(source))


def update_checkpoint(
    db: Session,
    source: str,
    last_event_time: datetime | None = None,
    last_cursor: str | None = None,
) -> Checkpoint:
    """Upsert a source checkpoint after a successfully processed batch."""
    source = _validate_source(source)
    checkpoint = db.get(Checkpoint, source)
    if checkpoint is None:
        checkpoint = Checkpoint(source=source)
        db.add(checkpoint)
    if last_event_time is not None:
        checkpoint.last_event_time = last_event_time
    if last_cursor is not None:
        checkpoint.last_cursor = last_cursor
    checkpoint.updated_at = utcnow()
    db.commit()
    db.refresh(checkpoint)
    return checkpoint


def upsert_files_checkpoint(db: Session, last_event_time: datetime | None = None) -> Checkpoint:
    """
    Record a filesystem scan.

    With a time, both timestamps advance. Without one, an existing checkpoint
    only gets ``updated_at`` bumped and a missing one starts at the epoch.
    """
    checkpoint = db.get(Checkpoint, CheckpointSource.FILES.value)
    if checkpoint is None:
        checkpoint = Checkpoint(
            source=CheckpointSource.FILES.value,
            last_event_time=last_event_time or EPOCH,
        )
        db.add(checkpoint)
    elif last_event_time is not None:
        checkpoint.last_event_time = last_event_time
    checkpoint.updated_at = utcnow()
    db.commit()
    db.refresh(checkpoint)
    return checkpoint


def get_sync_status(db: Session) -> list[SourceSyncStatus]:
    """Checkpoint and queue backlog per source."""
    checkpoints = {cp.source: cp for cp in db.execute(select(Checkpoint)).scalars().all()}
    counts: dict[tuple[str, str], int] = {
        (source, status): count
        for source, status, count in db.execute(
            select(QueueItem.source, QueueItem.status, func.count()).group_by(
                QueueItem.source, QueueItem.status
            )
        ).all()
    }

    result: list[SourceSyncStatus] = []
    for source in CheckpointSource:
        checkpoint = checkpoints.get(source.value)
        result.append(
            SourceSyncStatus(
                source=source.value,
                last_event_time=checkpoint.last_event_time if checkpoint else None,
                last_cursor=checkpoint.last_cursor if checkpoint else None,
                checkpoint_updated_at=checkpoint.updated_at if checkpoint else None,
                pending_count=counts.get((source.value, QueueStatus.PENDING.value), 0),
                processing_count=counts.get((source.value, QueueStatus.PROCESSING.value), 0),
                failed_count=counts.get((source.value, QueueStatus.FAILED.value), 0)
                + counts.get((source.value, QueueStatus.DEAD_LETTER.value), 0),
            )
        )
    return result
