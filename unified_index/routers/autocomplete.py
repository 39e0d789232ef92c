"""Autocomplete router - typeahead lookups for filter inputs."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from unified_index.core.deps import get_db
from unified_index.schemas.autocomplete import (
    CostGroupOption,
    LocationOption,
    PersonOption,
    ProjectOption,
    TagOption,
)
from unified_index.services import autocomplete_service
from unified_index.services.autocomplete_service import DEFAULT_LIMIT, MAX_LIMIT

router = APIRouter(prefix="/autocomplete", tags=["autocomplete"])


@router.get("/projects", response_model=list[ProjectOption])
def projects(
    q: str | None = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
):
    return autocomplete_service.search_projects(db, q, limit)


@router.get("/persons", response_model=list[PersonOption])
def persons(
    q: str | None = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
):
    return autocomplete_service.search_persons(db, q, limit)


@router.get("/locations", response_model=list[LocationOption])
def locations(
    q: str | None = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
):
    return autocomplete_service.search_locations(db, q, limit)


@router.get("/cost-groups", response_model=list[CostGroupOption])
def cost_groups(
    q: str | None = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
):
    """Digits search a code range (``3`` covers 300-399), anything else the name."""
    return autocomplete_service.search_cost_groups(db, q, limit)


@router.get("/tags", response_model=list[TagOption])
def tags(
    q: str | None = None,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
):
    return autocomplete_service.search_tags(db, q, limit)
