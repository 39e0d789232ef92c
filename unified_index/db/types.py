"""Portable SQLAlchemy column types and the array predicates that go with them."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import JSON, Integer, Text, cast, false, func, literal, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import TypeDecorator


JSONType = JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), "postgresql")


class _ArrayType(TypeDecorator):
    """
    List column: native ARRAY on PostgreSQL, a JSON list elsewhere.

    Empty lists are stored as NULL so that ``count(column)`` means
    "rows with at least one element".
    """

    impl = JSON
    cache_ok = True
    element_type: type = Text

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.ARRAY(self.element_type))
        return dialect.type_descriptor(JSON(none_as_null=True))

    def process_bind_param(self, value, dialect):
        if not value:
            return None
        return list(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return []
        return list(value)


class IntArray(_ArrayType):
    """Array of integer ids (hierarchy node ids)."""

    cache_ok = True
    element_type = Integer


class TextArray(_ArrayType):
    """Array of strings (emails, names)."""

    cache_ok = True
    element_type = Text


def array_overlaps(column, values: Iterable, dialect_name: str) -> ColumnElement[bool]:
    """
    True when ``column`` shares at least one element with ``values``.

    An empty ``values`` never matches.
    """
    values = list(values)
    if not values:
        return false()
    if dialect_name == "postgresql":
        element_type = getattr(column.type, "element_type", Text)
        return column.op("&&", is_comparison=True)(
            cast(postgresql.array(values), postgresql.ARRAY(element_type))
        )
    elements = func.json_each(column).table_valued("value")
    return (
        select(literal(1))
        .select_from(elements)
        .where(elements.c.value.in_(values))
        .exists()
    )
