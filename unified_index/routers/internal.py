"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from the external scheduler.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from unified_index.core.deps import get_db, verify_internal_secret
from unified_index.schemas.queue import (
    ContentMaintenanceResponse,
    QueueMaintenanceResponse,
    RefreshResponse,
    SegmentRefreshResult,
)
from unified_index.services import aggregation_service, content_store_service, ingestion_queue_service

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


def _refresh_response(results: list[tuple[str, bool]]) -> RefreshResponse:
    return RefreshResponse(
        segments=[SegmentRefreshResult(segment=segment, refreshed=refreshed) for segment, refreshed in results]
    )


@router.post("/refresh-stale", response_model=RefreshResponse)
def refresh_stale(db: Session = Depends(get_db)):
    """Refresh segments that are flagged or past their interval. Skipped while another refresh runs."""
    return _refresh_response(aggregation_service.refresh_stale(db))


@router.post("/refresh-all", response_model=RefreshResponse)
def refresh_all(
    blocking: bool = Query(False, description="Rebuild instead of merging"),
    db: Session = Depends(get_db),
):
    return _refresh_response(aggregation_service.refresh_all(db, concurrent=not blocking))


@router.post("/queue-maintenance", response_model=QueueMaintenanceResponse)
def queue_maintenance(db: Session = Depends(get_db)):
    return QueueMaintenanceResponse(
        stuck_reset=ingestion_queue_service.reset_stuck_items(db),
        completed_purged=ingestion_queue_service.cleanup_old_items(db),
    )


@router.post("/content-maintenance", response_model=ContentMaintenanceResponse)
def content_maintenance(db: Session = Depends(get_db)):
    uploads_reset = content_store_service.reset_stuck_uploads(db)
    indexing_reset = content_store_service.reset_stuck_indexing(db)
    return ContentMaintenanceResponse(
        uploads_reset=uploads_reset,
        indexing_reset=indexing_reset,
        stats=content_store_service.get_processing_stats(db),
    )
