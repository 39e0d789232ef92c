"""Pydantic schemas for the item query API."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from unified_index.query.engine import DEFAULT_LIMIT, MAX_LIMIT
from unified_index.query.filters import ItemFilters


class ItemQueryRequest(BaseModel):
    """Filters plus sort and page. Unknown sort fields fall back to sort_date."""
    filters: ItemFilters = Field(default_factory=ItemFilters)
    sort_field: str | None = None
    sort_order: str | None = None
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    offset: int = Field(default=0, ge=0)


class ItemCountRequest(BaseModel):
    filters: ItemFilters = Field(default_factory=ItemFilters)


class ItemRead(BaseModel):
    """One unified item (machine-only search columns are omitted)."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    name: str | None
    description: str | None
    body: str | None
    preview: str | None
    status: str | None
    project_id: str | None
    project: str | None
    customer: str | None
    location: str | None
    location_path: str | None
    cost_group: str | None
    cost_group_code: int | None
    due_date: date | None
    priority: str | None
    progress: int | None
    tasklist: str | None
    task_type_id: int | None
    task_type_name: str | None
    task_type_color: str | None
    assigned_to: list[str] | None
    tags: list[str] | None
    creator: str | None
    conversation_subject: str | None
    recipients: list[str] | None
    attachments: list | None
    attachment_count: int
    storage_path: str | None
    thumbnail_path: str | None
    file_extension: str | None
    created_at: datetime | None
    updated_at: datetime | None
    sort_date: datetime | None


class ItemPageResponse(BaseModel):
    items: list[ItemRead]
    limit: int
    offset: int
    sort_field: str
    sort_order: str


class ItemCountResponse(BaseModel):
    total_count: int
    nonempty_columns: list[str]
    type_counts: dict[str, int]
    task_type_counts: dict[int, int]
