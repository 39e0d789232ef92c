"""Items router - paginated query and counts over the unified index."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from unified_index.core.deps import get_access_context, get_db
from unified_index.query.engine import count_with_metadata, query_items
from unified_index.query.filters import AccessContext
from unified_index.schemas.item import (
    ItemCountRequest,
    ItemCountResponse,
    ItemPageResponse,
    ItemQueryRequest,
    ItemRead,
)

router = APIRouter(prefix="/items", tags=["items"])


@router.post("/query", response_model=ItemPageResponse)
def query(
    body: ItemQueryRequest,
    db: Session = Depends(get_db),
    access: AccessContext = Depends(get_access_context),
):
    """One page of items; an empty result is an empty page."""
    page = query_items(
        db,
        filters=body.filters,
        sort_field=body.sort_field,
        sort_order=body.sort_order,
        limit=body.limit,
        offset=body.offset,
        access=access,
    )
    return ItemPageResponse(
        items=[ItemRead.model_validate(item) for item in page.items],
        limit=page.limit,
        offset=page.offset,
        sort_field=page.sort_field,
        sort_order=page.sort_order,
    )


@router.post("/count", response_model=ItemCountResponse)
def count(
    body: ItemCountRequest,
    db: Session = Depends(get_db),
    access: AccessContext = Depends(get_access_context),
):
    counts = count_with_metadata(db, filters=body.filters, access=access)
    return ItemCountResponse(
        total_count=counts.total_count,
        nonempty_columns=counts.nonempty_columns,
        type_counts=counts.type_counts,
        task_type_counts=counts.task_type_counts,
    )
