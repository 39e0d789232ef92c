"""
Bulk service - administrative re-runs of the derivation rules over every record.

Each re-run is tracked by an ``OperationRun``. Items are processed one at a
time inside a savepoint: a failing item is rolled back, logged and counted as
skipped, and the run carries on.
"""

import logging
import uuid
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.core.structured_logging import build_log_context
from unified_index.db.enums import LinkOutcome, PersonSource, RunType
from unified_index.db.models import MContact, MConversation, OperationRun, TwCompany, TwTask, TwUser
from unified_index.services import (
    classification_service,
    identity_service,
    involvement_service,
    operation_run_service,
)
from unified_index.types import ConversationTarget, TaskTarget

logger = logging.getLogger(__name__)

# Returns the LinkOutcome for linking runs, a created/updated flag or count otherwise
ItemProcessor = Callable[[Session, object], object]


class _Counters:
    def __init__(self) -> None:
        self.processed = 0
        self.created = 0
        self.linked = 0
        self.skipped = 0

    def record(self, result: object) -> None:
        if result == LinkOutcome.CREATED:
            self.created += 1
        elif result == LinkOutcome.LINKED:
            self.linked += 1
        elif result == LinkOutcome.SKIPPED:
            self.skipped += 1
        elif result:
            self.linked += 1


def _flush_progress(db: Session, run: OperationRun, counters: _Counters) -> None:
    operation_run_service.update_progress(
        db,
        run,
        processed=counters.processed,
        created=counters.created,
        linked=counters.linked,
        skipped=counters.skipped,
    )


def _process_all(
    db: Session,
    run_type: RunType,
    items: list,
    processor: ItemProcessor,
) -> uuid.UUID:
    run = operation_run_service.start_run(db, run_type.value, total=len(items))
    log_context = build_log_context(run_id=str(run.id))
    counters = _Counters()

    try:
        for item in items:
            try:
                with db.begin_nested():
                    result = processor(db, item)
                counters.record(result)
            except Exception as exc:
                counters.skipped += 1
                logger.warning("Skipped %r in %s run: %s", item, run_type.value, exc, extra=log_context)
            counters.processed += 1
            if counters.processed % settings.OPERATION_PROGRESS_FLUSH_EVERY == 0:
                _flush_progress(db, run, counters)
        _flush_progress(db, run, counters)
    except Exception as exc:
        db.rollback()
        operation_run_service.fail_run(db, run, str(exc))
        raise

    operation_run_service.complete_run(db, run)
    return run.id


# =============================================================================
# Re-runs
# =============================================================================


def _task_ids(db: Session) -> list[str]:
    return list(
        db.execute(select(TwTask.id).where(TwTask.deleted_at.is_(None)).order_by(TwTask.id)).scalars()
    )


def _conversation_ids(db: Session) -> list[str]:
    return list(db.execute(select(MConversation.id).order_by(MConversation.id)).scalars())


def rerun_all_task_type_extraction(db: Session) -> uuid.UUID:
    """Re-apply task-type rules to every live task; manual assignments are kept."""
    return _process_all(
        db,
        RunType.TASK_TYPE_EXTRACTION,
        _task_ids(db),
        lambda session, task_id: classification_service.extract_task_type(session, task_id) is not None,
    )


def rerun_all_person_linking(db: Session) -> uuid.UUID:
    """Link every known identity: missive contacts, then teamwork users, then companies."""
    identities: list[tuple[str, str]] = []
    identities.extend(
        (PersonSource.MISSIVE_CONTACT.value, contact_id)
        for contact_id in db.execute(select(MContact.id).order_by(MContact.id)).scalars()
    )
    identities.extend(
        (PersonSource.TEAMWORK_USER.value, user_id)
        for user_id in db.execute(select(TwUser.id).order_by(TwUser.id)).scalars()
    )
    identities.extend(
        (PersonSource.TEAMWORK_COMPANY.value, company_id)
        for company_id in db.execute(select(TwCompany.id).order_by(TwCompany.id)).scalars()
    )
    return _process_all(
        db,
        RunType.PERSON_LINKING,
        identities,
        lambda session, identity: identity_service.link_person_from_external_identity(session, *identity),
    )


def rerun_all_project_linking(db: Session) -> uuid.UUID:
    return _process_all(
        db,
        RunType.PROJECT_LINKING,
        _conversation_ids(db),
        classification_service.link_projects_for_conversation,
    )


def _targets(db: Session) -> list:
    return [TaskTarget(task_id) for task_id in _task_ids(db)] + [
        ConversationTarget(conversation_id) for conversation_id in _conversation_ids(db)
    ]


def rerun_all_cost_group_linking(db: Session) -> uuid.UUID:
    return _process_all(
        db,
        RunType.COST_GROUP_LINKING,
        _targets(db),
        classification_service.rederive_cost_groups,
    )


def rerun_all_location_linking(db: Session) -> uuid.UUID:
    return _process_all(
        db,
        RunType.LOCATION_LINKING,
        _targets(db),
        classification_service.rederive_locations,
    )


def rerun_involvement_rebuild(db: Session) -> uuid.UUID:
    """Rebuild the involvement index item by item; deleted tasks lose their records."""
    task_ids = db.execute(select(TwTask.id).order_by(TwTask.id)).scalars()
    items: list[tuple[str, str]] = [("task", task_id) for task_id in task_ids]
    items.extend(("conversation", conversation_id) for conversation_id in _conversation_ids(db))
    return _process_all(
        db,
        RunType.INVOLVEMENT_REBUILD,
        items,
        _rebuild_involvement_item,
    )


def _rebuild_involvement_item(db: Session, item: tuple[str, str]) -> int:
    kind, item_id = item
    if kind == "task":
        return involvement_service.refresh_task_involvement(db, item_id)
    return involvement_service.refresh_conversation_involvement(db, item_id)


RUNNERS: dict[RunType, Callable[[Session], uuid.UUID]] = {
    RunType.TASK_TYPE_EXTRACTION: rerun_all_task_type_extraction,
    RunType.PERSON_LINKING: rerun_all_person_linking,
    RunType.PROJECT_LINKING: rerun_all_project_linking,
    RunType.COST_GROUP_LINKING: rerun_all_cost_group_linking,
    RunType.LOCATION_LINKING: rerun_all_location_linking,
    RunType.INVOLVEMENT_REBUILD: rerun_involvement_rebuild,
}


def run_bulk_operation(db: Session, run_type: str) -> uuid.UUID:
    """Dispatch a re-run by its type name."""
    return RUNNERS[operation_run_service.parse_run_type(run_type)](db)
