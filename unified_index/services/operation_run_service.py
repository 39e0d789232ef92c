"""Operation run service - progress records for bulk re-derivation runs."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from unified_index.core.structured_logging import build_log_context
from unified_index.db.enums import RunStatus, RunType
from unified_index.db.models import OperationRun
from unified_index.utils.datetime_parsing import utcnow

logger = logging.getLogger(__name__)


class OperationRunError(Exception):
    """Base exception for operation run tracking."""

    pass


class OperationRunNotFoundError(OperationRunError):
    """Run does not exist."""

    pass


class UnknownRunTypeError(OperationRunError):
    """Run type is not one of the known bulk operations."""

    pass


def parse_run_type(run_type: str) -> RunType:
    try:
        return RunType(run_type)
    except ValueError as exc:
        raise UnknownRunTypeError(f"Unknown run type: {run_type}") from exc


def start_run(db: Session, run_type: str, total: int = 0) -> OperationRun:
    run = OperationRun(
        id=uuid.uuid4(),
        run_type=parse_run_type(run_type).value,
        status=RunStatus.RUNNING.value,
        total_count=total,
        started_at=utcnow(),
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    logger.info("Started %s run", run.run_type, extra=build_log_context(run_id=str(run.id)))
    return run


def update_progress(
    db: Session,
    run: OperationRun,
    *,
    processed: int | None = None,
    created: int | None = None,
    linked: int | None = None,
    skipped: int | None = None,
    commit: bool = True,
) -> OperationRun:
    """Set absolute counters on a running run."""
    if processed is not None:
        run.processed_count = processed
    if created is not None:
        run.created_count = created
    if linked is not None:
        run.linked_count = linked
    if skipped is not None:
        run.skipped_count = skipped
    if commit:
        db.commit()
    return run


def complete_run(db: Session, run: OperationRun) -> OperationRun:
    run.status = RunStatus.COMPLETED.value
    run.completed_at = utcnow()
    db.commit()
    db.refresh(run)
    logger.info(
        "Completed %s run: %d processed, %d skipped",
        run.run_type,
        run.processed_count,
        run.skipped_count,
        extra=build_log_context(run_id=str(run.id)),
    )
    return run


def fail_run(db: Session, run: OperationRun, error: str) -> OperationRun:
    run.status = RunStatus.FAILED.value
    run.error_message = error
    run.completed_at = utcnow()
    db.commit()
    db.refresh(run)
    logger.error("Failed %s run: %s", run.run_type, error, extra=build_log_context(run_id=str(run.id)))
    return run


def get_run_status(db: Session, run_id: uuid.UUID) -> OperationRun:
    run = db.get(OperationRun, run_id)
    if not run:
        raise OperationRunNotFoundError(f"Operation run {run_id} not found")
    return run


def get_latest_run(db: Session, run_type: str) -> OperationRun | None:
    return db.execute(
        select(OperationRun)
        .where(OperationRun.run_type == parse_run_type(run_type).value)
        .order_by(OperationRun.started_at.desc())
        .limit(1)
    ).scalar_one_or_none()
