"""Queue router - adapter intake and queue visibility."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from unified_index.core.deps import get_db
from unified_index.schemas.queue import EnqueueRequest, QueueItemRead, SourceSyncStatusRead
from unified_index.services import checkpoint_service, ingestion_queue_service

router = APIRouter(prefix="/queue", tags=["queue"])


@router.post("/enqueue", response_model=QueueItemRead, status_code=201)
def enqueue(body: EnqueueRequest, db: Session = Depends(get_db)):
    try:
        return ingestion_queue_service.enqueue(
            db,
            body.source.value,
            body.event_type,
            body.external_id,
            body.payload,
            max_retries=body.max_retries,
        )
    except ingestion_queue_service.IngestionQueueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/stats")
def stats(db: Session = Depends(get_db)) -> dict[str, dict[str, int]]:
    """Item counts by status for each source."""
    return ingestion_queue_service.get_queue_stats(db)


@router.get("/sync-status", response_model=list[SourceSyncStatusRead])
def sync_status(db: Session = Depends(get_db)):
    return checkpoint_service.get_sync_status(db)


@router.post("/items/{item_id}/retry", response_model=QueueItemRead)
def retry(item_id: int, db: Session = Depends(get_db)):
    """Requeue a dead-lettered item with its retry count reset."""
    try:
        return ingestion_queue_service.retry_dead_letter(db, item_id)
    except ingestion_queue_service.QueueItemNotFoundError:
        raise HTTPException(status_code=404, detail="Queue item not found")
    except ingestion_queue_service.IngestionQueueError as e:
        raise HTTPException(status_code=409, detail=str(e))
