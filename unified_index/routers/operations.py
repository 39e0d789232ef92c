"""Operations router - bulk re-derivation runs and their progress."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from unified_index.core.deps import get_db
from unified_index.schemas.operation import OperationRunRead, OperationStarted
from unified_index.services import bulk_service, operation_run_service

router = APIRouter(prefix="/operations", tags=["operations"])


@router.get("/latest/{run_type}", response_model=OperationRunRead)
def latest_run(run_type: str, db: Session = Depends(get_db)):
    try:
        run = operation_run_service.get_latest_run(db, run_type)
    except operation_run_service.UnknownRunTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not run:
        raise HTTPException(status_code=404, detail="No run of this type yet")
    return run


@router.get("/{run_id}", response_model=OperationRunRead)
def run_status(run_id: UUID, db: Session = Depends(get_db)):
    try:
        return operation_run_service.get_run_status(db, run_id)
    except operation_run_service.OperationRunNotFoundError:
        raise HTTPException(status_code=404, detail="Operation run not found")


@router.post("/{run_type}", response_model=OperationStarted, status_code=201)
def start_run(run_type: str, db: Session = Depends(get_db)):
    """Run a bulk re-derivation to completion and return its run id."""
    try:
        run_id = bulk_service.run_bulk_operation(db, run_type)
    except operation_run_service.UnknownRunTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return OperationStarted(run_id=run_id)
