"""Typed item filters and the predicate objects they compile to.

Every filter field is optional and an absent field is a no-op. Predicates
compile to SQLAlchemy expressions against ``unified_items``; user input only
ever reaches the database as bound parameters.

Sub-searches that resolve to a set of ids (person, location) compile to
``false()`` when they find nothing, so the whole query is empty rather than
unfiltered.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Sequence

from pydantic import BaseModel, Field
from sqlalchemy import and_, exists, false, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from unified_index.core.app_config import get_app_config
from unified_index.db.enums import ItemType
from unified_index.db.models import AggregatedItem, InvolvementRecord
from unified_index.db.types import array_overlaps
from unified_index.services import hierarchy_service, identity_service
from unified_index.utils.normalization import escape_like_string, normalize_email, normalize_search_text


class ItemFilters(BaseModel):
    """Optional, independently composable filters for the item query."""

    types: list[ItemType] | None = None
    task_types: list[int] | None = None
    text_search: str | None = None
    involved_person: str | None = None
    tag_search: str | None = None
    cost_group_code: str | None = None
    project_search: str | None = None
    location_search: str | None = None
    name_contains: str | None = None
    description_contains: str | None = None
    customer_contains: str | None = None
    tasklist_contains: str | None = None
    creator_contains: str | None = None
    status_in: list[str] | None = None
    status_not_in: list[str] | None = None
    priority_in: list[str] | None = None
    priority_not_in: list[str] | None = None
    due_date_min: date | None = None
    due_date_max: date | None = None
    due_date_is_null: bool | None = None
    created_at_min: datetime | None = None
    created_at_max: datetime | None = None
    updated_at_min: datetime | None = None
    updated_at_max: datetime | None = None
    progress_min: int | None = Field(default=None, ge=0)
    progress_max: int | None = Field(default=None, ge=0)
    attachment_count_min: int | None = Field(default=None, ge=0)
    attachment_count_max: int | None = Field(default=None, ge=0)


@dataclass(frozen=True)
class AccessContext:
    """Caller identity supplied by the auth layer in front of the query API."""

    email: str | None = None
    is_admin: bool = False


@dataclass(frozen=True)
class CompileContext:
    db: Session

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name


# =============================================================================
# Predicates
# =============================================================================


class Predicate:
    """Compiles to a boolean expression, or None for a no-op."""

    def compile(self, ctx: CompileContext) -> ColumnElement[bool] | None:
        raise NotImplementedError


@dataclass(frozen=True)
class InList(Predicate):
    column: Any
    values: Sequence[Any] | None

    def compile(self, ctx):
        if not self.values:
            return None
        return self.column.in_(list(self.values))


@dataclass(frozen=True)
class NotInList(Predicate):
    """NULL values always pass."""

    column: Any
    values: Sequence[Any] | None

    def compile(self, ctx):
        if not self.values:
            return None
        return or_(self.column.is_(None), self.column.not_in(list(self.values)))


@dataclass(frozen=True)
class Contains(Predicate):
    """Case-insensitive substring match."""

    column: Any
    text: str | None

    def compile(self, ctx):
        term = normalize_search_text(self.text)
        if not term:
            return None
        return self.column.ilike(f"%{escape_like_string(term)}%", escape="\\")


@dataclass(frozen=True)
class Range(Predicate):
    column: Any
    minimum: Any = None
    maximum: Any = None

    def compile(self, ctx):
        clauses = []
        if self.minimum is not None:
            clauses.append(self.column >= self.minimum)
        if self.maximum is not None:
            clauses.append(self.column <= self.maximum)
        if not clauses:
            return None
        return and_(*clauses)


@dataclass(frozen=True)
class IsNull(Predicate):
    column: Any
    is_null: bool | None

    def compile(self, ctx):
        if self.is_null is None:
            return None
        return self.column.is_(None) if self.is_null else self.column.is_not(None)


@dataclass(frozen=True)
class TaskTypeIn(Predicate):
    """Restricts task rows to the given task types; other rows pass."""

    task_type_ids: Sequence[int] | None

    def compile(self, ctx):
        if not self.task_type_ids:
            return None
        return or_(
            AggregatedItem.type != ItemType.TASK.value,
            AggregatedItem.task_type_id.in_(list(self.task_type_ids)),
        )


@dataclass(frozen=True)
class CostGroupCodeRange(Predicate):
    value: str | None

    def compile(self, ctx):
        code_range = hierarchy_service.compute_cost_group_range(self.value)
        if code_range is None:
            return None
        low, high = code_range
        return AggregatedItem.cost_group_code.between(low, high)


@dataclass(frozen=True)
class InvolvedPerson(Predicate):
    search: str | None

    def compile(self, ctx):
        if not normalize_search_text(self.search):
            return None
        person_ids = identity_service.find_person_ids_by_search(ctx.db, self.search)
        if not person_ids:
            return false()
        return exists(
            select(InvolvementRecord.item_id).where(
                InvolvementRecord.item_id == AggregatedItem.id,
                InvolvementRecord.item_type == AggregatedItem.type,
                InvolvementRecord.person_id.in_(person_ids),
            )
        )


@dataclass(frozen=True)
class LocationSearch(Predicate):
    """Matches items linked to a matching location or any of its descendants."""

    search: str | None

    def compile(self, ctx):
        if not normalize_search_text(self.search):
            return None
        location_ids = hierarchy_service.find_location_ids_by_search(ctx.db, self.search)
        if not location_ids:
            return false()
        return array_overlaps(AggregatedItem.location_ids, location_ids, ctx.dialect_name)


@dataclass(frozen=True)
class Visibility(Predicate):
    """Message rows are visible only to involved callers or through a public address."""

    access: AccessContext | None

    def compile(self, ctx):
        if self.access is not None and self.access.is_admin:
            return None
        emails = set(get_app_config().public_email_addresses)
        caller = normalize_email(self.access.email) if self.access else None
        if caller:
            emails.add(caller)
        return or_(
            AggregatedItem.type != ItemType.EMAIL.value,
            array_overlaps(AggregatedItem.involved_emails, sorted(emails), ctx.dialect_name),
        )


# =============================================================================
# Compilation
# =============================================================================


def build_predicates(filters: ItemFilters) -> list[Predicate]:
    item = AggregatedItem
    types = [t.value for t in filters.types] if filters.types else None
    return [
        InList(item.type, types),
        TaskTypeIn(filters.task_types),
        Contains(item.search_text, filters.text_search),
        InvolvedPerson(filters.involved_person),
        Contains(item.tag_names_text, filters.tag_search),
        CostGroupCodeRange(filters.cost_group_code),
        Contains(item.project, filters.project_search),
        LocationSearch(filters.location_search),
        Contains(item.name, filters.name_contains),
        Contains(item.description, filters.description_contains),
        Contains(item.customer, filters.customer_contains),
        Contains(item.tasklist, filters.tasklist_contains),
        Contains(item.creator, filters.creator_contains),
        InList(item.status, filters.status_in),
        NotInList(item.status, filters.status_not_in),
        InList(item.priority, filters.priority_in),
        NotInList(item.priority, filters.priority_not_in),
        Range(item.due_date, filters.due_date_min, filters.due_date_max),
        IsNull(item.due_date, filters.due_date_is_null),
        Range(item.created_at, filters.created_at_min, filters.created_at_max),
        Range(item.updated_at, filters.updated_at_min, filters.updated_at_max),
        Range(item.progress, filters.progress_min, filters.progress_max),
        Range(item.attachment_count, filters.attachment_count_min, filters.attachment_count_max),
    ]


def compile_filters(
    db: Session,
    filters: ItemFilters | None,
    access: AccessContext | None = None,
) -> list[ColumnElement[bool]]:
    """WHERE clauses for the filters plus the visibility rule."""
    ctx = CompileContext(db=db)
    predicates = build_predicates(filters or ItemFilters())
    predicates.append(Visibility(access))
    clauses = []
    for predicate in predicates:
        clause = predicate.compile(ctx)
        if clause is not None:
            clauses.append(clause)
    return clauses
