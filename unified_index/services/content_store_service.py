"""Content store service - content-addressed upload and processing queues.

Each unique byte content has one ``ContentRecord`` keyed by its hash; any
number of ``File`` paths may point at it.

Upload lifecycle:   pending -> uploading -> uploaded | error | skipped
Processing:         pending -> indexing -> done | error (only once uploaded)

Claims use ``FOR UPDATE SKIP LOCKED`` like the ingestion queue.
"""

import logging
import uuid
from datetime import timedelta
from typing import Callable, Iterable

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.db.enums import ProcessingStatus, UploadStatus
from unified_index.db.models import ContentRecord, File
from unified_index.utils.datetime_parsing import utcnow

logger = logging.getLogger(__name__)

StorageDeletionHook = Callable[[list[str]], None]

_deletion_hook: StorageDeletionHook | None = None


# =============================================================================
# Exceptions
# =============================================================================


class ContentStoreError(Exception):
    """Base exception for content store operations."""

    pass


class ContentNotFoundError(ContentStoreError):
    """Content record or file does not exist."""

    pass


def register_deletion_hook(hook: StorageDeletionHook | None) -> None:
    """Install the callable that removes stored payloads once content is garbage collected."""
    global _deletion_hook
    _deletion_hook = hook


def _get_content_or_raise(db: Session, content_hash: str) -> ContentRecord:
    record = db.get(ContentRecord, content_hash)
    if not record:
        raise ContentNotFoundError(f"Content {content_hash} not found")
    return record


def _set_upload_status(record: ContentRecord, status: UploadStatus, message: str | None = None) -> None:
    record.upload_status = status.value
    record.status_message = message
    record.last_status_change = utcnow()


# =============================================================================
# Registration
# =============================================================================


def _get_or_create_content(
    db: Session,
    content_hash: str,
    size_bytes: int,
    mime_type: str | None,
) -> ContentRecord:
    existing = db.get(ContentRecord, content_hash)
    if existing is not None:
        return existing
    record = ContentRecord(
        content_hash=content_hash,
        size_bytes=size_bytes,
        mime_type=mime_type,
        upload_status=UploadStatus.PENDING.value,
        processing_status=ProcessingStatus.PENDING.value,
        try_count=0,
        last_status_change=utcnow(),
    )
    try:
        with db.begin_nested():
            db.add(record)
            db.flush()
    except IntegrityError:
        # Another writer registered the same content first
        existing = db.get(ContentRecord, content_hash)
        if existing is None:
            raise
        return existing
    return record


def register_file(
    db: Session,
    full_path: str,
    content_hash: str,
    size_bytes: int = 0,
    mime_type: str | None = None,
    project_id: str | None = None,
) -> File:
    """
    Record a filesystem path and its content.

    The content record is created only for a hash not seen before. A path
    whose content changed is re-pointed, and the old content is collected if
    nothing references it anymore.
    """
    _get_or_create_content(db, content_hash, size_bytes, mime_type)

    file = db.execute(select(File).where(File.full_path == full_path)).scalar_one_or_none()
    previous_hash = None
    if file is None:
        file = File(
            id=str(uuid.uuid4()),
            full_path=full_path,
            content_hash=content_hash,
            project_id=project_id,
        )
        db.add(file)
    else:
        if file.content_hash != content_hash:
            previous_hash = file.content_hash
        file.content_hash = content_hash
        file.project_id = project_id
        file.updated_at = utcnow()
    db.flush()

    storage_paths: list[str] = []
    if previous_hash:
        _, storage_paths = _collect_if_unreferenced(db, previous_hash)
    db.commit()
    db.refresh(file)
    _run_deletion_hook(storage_paths)
    return file


def get_file(db: Session, file_id: str) -> File | None:
    return db.get(File, file_id)


# =============================================================================
# Upload queue
# =============================================================================


def dequeue_upload_batch(
    db: Session,
    limit: int = 10,
    exclude_hashes: Iterable[str] = (),
) -> list[ContentRecord]:
    """
    Claim content that needs (re)uploading.

    Eligible: pending, error under the retry cap, or uploading for longer than
    the stuck timeout. Claimed records become ``uploading`` with
    ``try_count`` incremented.
    """
    if limit <= 0:
        return []
    now = utcnow()
    stuck_cutoff = now - timedelta(minutes=settings.UPLOAD_STUCK_TIMEOUT_MINUTES)
    query = (
        select(ContentRecord)
        .where(
            or_(
                ContentRecord.upload_status == UploadStatus.PENDING.value,
                and_(
                    ContentRecord.upload_status == UploadStatus.ERROR.value,
                    ContentRecord.try_count < settings.UPLOAD_MAX_TRIES,
                ),
                and_(
                    ContentRecord.upload_status == UploadStatus.UPLOADING.value,
                    ContentRecord.last_status_change < stuck_cutoff,
                ),
            )
        )
        .order_by(ContentRecord.last_status_change, ContentRecord.content_hash)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    excluded = list(exclude_hashes)
    if excluded:
        query = query.where(ContentRecord.content_hash.not_in(excluded))

    records = list(db.execute(query).scalars().all())
    for record in records:
        record.upload_status = UploadStatus.UPLOADING.value
        record.try_count += 1
        record.last_status_change = now
    db.commit()
    return records


def mark_upload_complete(
    db: Session,
    content_hash: str,
    storage_path: str,
    thumbnail_path: str | None = None,
) -> ContentRecord:
    record = _get_content_or_raise(db, content_hash)
    record.storage_path = storage_path
    if thumbnail_path is not None:
        record.thumbnail_path = thumbnail_path
    _set_upload_status(record, UploadStatus.UPLOADED)
    db.commit()
    db.refresh(record)
    return record


def mark_upload_failed(db: Session, content_hash: str, message: str) -> ContentRecord:
    """Retryable failure; the record is claimed again until the retry cap."""
    record = _get_content_or_raise(db, content_hash)
    _set_upload_status(record, UploadStatus.ERROR, message)
    db.commit()
    db.refresh(record)
    return record


def mark_upload_skipped(db: Session, content_hash: str, message: str) -> ContentRecord:
    """Permanent skip (e.g. unsupported or oversized content)."""
    record = _get_content_or_raise(db, content_hash)
    _set_upload_status(record, UploadStatus.SKIPPED, message)
    db.commit()
    db.refresh(record)
    return record


def reset_stuck_uploads(db: Session, timeout_minutes: int | None = None) -> int:
    """Return uploads stuck in ``uploading`` past the timeout to ``pending``."""
    timeout = settings.UPLOAD_STUCK_TIMEOUT_MINUTES if timeout_minutes is None else timeout_minutes
    now = utcnow()
    result = db.execute(
        update(ContentRecord)
        .where(
            ContentRecord.upload_status == UploadStatus.UPLOADING.value,
            ContentRecord.last_status_change < now - timedelta(minutes=timeout),
        )
        .values(upload_status=UploadStatus.PENDING.value, last_status_change=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning("Reset %d stuck upload(s)", result.rowcount)
    return result.rowcount


# =============================================================================
# Processing queue
# =============================================================================


def claim_pending_content(db: Session, limit: int = 10) -> list[ContentRecord]:
    """Claim uploaded content awaiting text extraction and move it to ``indexing``."""
    if limit <= 0:
        return []
    now = utcnow()
    records = list(
        db.execute(
            select(ContentRecord)
            .where(
                ContentRecord.upload_status == UploadStatus.UPLOADED.value,
                ContentRecord.processing_status == ProcessingStatus.PENDING.value,
            )
            .order_by(ContentRecord.last_status_change, ContentRecord.content_hash)
            .limit(limit)
            .with_for_update(skip_locked=True)
        ).scalars().all()
    )
    for record in records:
        record.processing_status = ProcessingStatus.INDEXING.value
        record.last_status_change = now
    db.commit()
    return records


def mark_processing_done(
    db: Session,
    content_hash: str,
    extracted_text: str | None = None,
    thumbnail_path: str | None = None,
) -> ContentRecord:
    record = _get_content_or_raise(db, content_hash)
    record.processing_status = ProcessingStatus.DONE.value
    if extracted_text is not None:
        record.extracted_text = extracted_text
    if thumbnail_path is not None:
        record.thumbnail_path = thumbnail_path
    record.status_message = None
    record.last_status_change = utcnow()
    db.commit()
    db.refresh(record)
    return record


def mark_processing_failed(db: Session, content_hash: str, message: str) -> ContentRecord:
    record = _get_content_or_raise(db, content_hash)
    record.processing_status = ProcessingStatus.ERROR.value
    record.status_message = message
    record.last_status_change = utcnow()
    db.commit()
    db.refresh(record)
    return record


def reset_stuck_indexing(db: Session, timeout_minutes: int | None = None) -> int:
    """
    Recover records stuck in ``indexing`` past the timeout.

    They go back to ``pending``, or to ``error`` once ``try_count`` has reached
    the cap; ``try_count`` is incremented either way.
    """
    timeout = settings.INDEXING_STUCK_TIMEOUT_MINUTES if timeout_minutes is None else timeout_minutes
    now = utcnow()
    stuck = db.execute(
        select(ContentRecord)
        .where(
            ContentRecord.processing_status == ProcessingStatus.INDEXING.value,
            ContentRecord.last_status_change < now - timedelta(minutes=timeout),
        )
        .with_for_update(skip_locked=True)
    ).scalars().all()
    for record in stuck:
        if record.try_count >= settings.INDEXING_MAX_TRIES:
            record.processing_status = ProcessingStatus.ERROR.value
            record.status_message = "Indexing timed out"
        else:
            record.processing_status = ProcessingStatus.PENDING.value
        record.try_count += 1
        record.last_status_change = now
    db.commit()
    if stuck:
        logger.warning("Reset %d stuck indexing record(s)", len(stuck))
    return len(stuck)


# =============================================================================
# Removal and garbage collection
# =============================================================================


def _collect_if_unreferenced(db: Session, content_hash: str) -> tuple[bool, list[str]]:
    """Delete the content record when no file references it. Returns (collected, storage paths)."""
    remaining = db.execute(
        select(func.count()).select_from(File).where(File.content_hash == content_hash)
    ).scalar_one()
    if remaining:
        return False, []
    record = db.get(ContentRecord, content_hash)
    if record is None:
        return False, []
    storage_paths = [path for path in (record.storage_path, record.thumbnail_path) if path]
    db.delete(record)
    db.flush()
    logger.info("Collected unreferenced content %s", content_hash)
    return True, storage_paths


def _run_deletion_hook(storage_paths: list[str]) -> None:
    if storage_paths and _deletion_hook is not None:
        _deletion_hook(storage_paths)


def remove_file(db: Session, file_id: str) -> bool:
    """
    Delete a file path. Returns True when its content was garbage collected.

    The storage deletion hook runs after commit, once, for the last reference.
    """
    file = db.get(File, file_id)
    if not file:
        raise ContentNotFoundError(f"File {file_id} not found")
    content_hash = file.content_hash
    db.delete(file)
    db.flush()
    collected, storage_paths = _collect_if_unreferenced(db, content_hash)
    db.commit()
    _run_deletion_hook(storage_paths)
    return collected


def get_processing_stats(db: Session) -> dict[str, dict[str, int]]:
    """Record counts by upload status and by processing status."""
    upload_counts = {status.value: 0 for status in UploadStatus}
    for status, count in db.execute(
        select(ContentRecord.upload_status, func.count()).group_by(ContentRecord.upload_status)
    ).all():
        upload_counts[status] = count
    processing_counts = {status.value: 0 for status in ProcessingStatus}
    for status, count in db.execute(
        select(ContentRecord.processing_status, func.count()).group_by(ContentRecord.processing_status)
    ).all():
        processing_counts[status] = count
    return {"upload": upload_counts, "processing": processing_counts}
