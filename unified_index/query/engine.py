"""Paginated query engine over the aggregated item store."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import String, and_, case, func, select
from sqlalchemy.orm import Session

from unified_index.db.enums import ItemType, SortOrder
from unified_index.db.models import AggregatedItem
from unified_index.query.filters import AccessContext, ItemFilters, compile_filters

DEFAULT_LIMIT = 50
MAX_LIMIT = 500
DEFAULT_SORT_FIELD = "sort_date"
DEFAULT_SORT_ORDER = SortOrder.DESC

SORTABLE_FIELDS = frozenset(
    {
        "name",
        "status",
        "project",
        "customer",
        "due_date",
        "created_at",
        "updated_at",
        "priority",
        "sort_date",
        "progress",
        "attachment_count",
        "cost_group_code",
        "creator",
    }
)

# Optional columns reported by count_with_metadata when any matching row holds a value
OPTIONAL_COLUMNS = (
    "description",
    "body",
    "preview",
    "status",
    "project",
    "customer",
    "location",
    "location_path",
    "cost_group",
    "cost_group_code",
    "due_date",
    "priority",
    "progress",
    "tasklist",
    "task_type_name",
    "assigned_to",
    "tags",
    "creator",
    "conversation_subject",
    "recipients",
    "attachments",
    "storage_path",
    "thumbnail_path",
    "file_extension",
)


@dataclass
class ItemPage:
    items: list[AggregatedItem]
    limit: int
    offset: int
    sort_field: str
    sort_order: str


@dataclass
class ItemCounts:
    total_count: int
    nonempty_columns: list[str] = field(default_factory=list)
    type_counts: dict[str, int] = field(default_factory=dict)
    task_type_counts: dict[int, int] = field(default_factory=dict)


def resolve_sort(sort_field: str | None, sort_order: str | None) -> tuple[str, SortOrder]:
    """Unknown fields fall back to sort_date, unknown orders to desc."""
    field_name = sort_field if sort_field in SORTABLE_FIELDS else DEFAULT_SORT_FIELD
    try:
        order = SortOrder((sort_order or "").lower())
    except ValueError:
        order = DEFAULT_SORT_ORDER
    return field_name, order


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    limit = DEFAULT_LIMIT if limit is None else limit
    return min(max(int(limit), 1), MAX_LIMIT), max(int(offset or 0), 0)


def _order_by(field_name: str, order: SortOrder):
    column = getattr(AggregatedItem, field_name)
    primary = column.asc() if order == SortOrder.ASC else column.desc()
    # NULLs last in both directions; (id, type) makes the order total
    return [primary.nulls_last(), AggregatedItem.id.asc(), AggregatedItem.type.asc()]


def query_items(
    db: Session,
    filters: ItemFilters | None = None,
    sort_field: str | None = None,
    sort_order: str | None = None,
    limit: int | None = DEFAULT_LIMIT,
    offset: int | None = 0,
    access: AccessContext | None = None,
) -> ItemPage:
    """
    Return one page of items.

    Phase 1 picks the page's (id, type) keys from the narrow sorted set;
    phase 2 joins only those keys back to the full rows, in the same order.
    """
    field_name, order = resolve_sort(sort_field, sort_order)
    limit, offset = clamp_page(limit, offset)
    clauses = compile_filters(db, filters, access)
    order_by = _order_by(field_name, order)

    page_keys = (
        select(AggregatedItem.id, AggregatedItem.type)
        .where(*clauses)
        .order_by(*order_by)
        .limit(limit)
        .offset(offset)
        .subquery("page_keys")
    )
    rows = db.execute(
        select(AggregatedItem)
        .join(
            page_keys,
            and_(AggregatedItem.id == page_keys.c.id, AggregatedItem.type == page_keys.c.type),
        )
        .order_by(*order_by)
    ).scalars().all()

    return ItemPage(
        items=list(rows),
        limit=limit,
        offset=offset,
        sort_field=field_name,
        sort_order=order.value,
    )


def _nonempty_count(column_name: str):
    column = getattr(AggregatedItem, column_name)
    if isinstance(column.type, String):
        return func.count(case((column != "", 1)))
    return func.count(column)


def count_with_metadata(
    db: Session,
    filters: ItemFilters | None = None,
    access: AccessContext | None = None,
) -> ItemCounts:
    """Total count plus which optional columns are populated and per-type breakdowns."""
    clauses = compile_filters(db, filters, access)

    aggregates = [func.count().label("total_count")]
    aggregates.extend(_nonempty_count(column).label(column) for column in OPTIONAL_COLUMNS)
    aggregates.extend(
        func.count(case((AggregatedItem.type == item_type.value, 1))).label(f"type_{item_type.value}")
        for item_type in ItemType
    )
    summary = db.execute(select(*aggregates).where(*clauses)).mappings().one()

    task_type_counts = {
        task_type_id: count
        for task_type_id, count in db.execute(
            select(AggregatedItem.task_type_id, func.count())
            .where(
                *clauses,
                AggregatedItem.type == ItemType.TASK.value,
                AggregatedItem.task_type_id.is_not(None),
            )
            .group_by(AggregatedItem.task_type_id)
        ).all()
    }

    return ItemCounts(
        total_count=summary["total_count"],
        nonempty_columns=[column for column in OPTIONAL_COLUMNS if summary[column]],
        type_counts={item_type.value: summary[f"type_{item_type.value}"] for item_type in ItemType},
        task_type_counts=task_type_counts,
    )
