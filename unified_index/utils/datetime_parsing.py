"""Datetime helpers for queue payloads and UTC bookkeeping."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """
    Coerce a datetime to aware UTC.

    Some backends (SQLite) hand back naive values; those are assumed to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(raw_value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp from an adapter payload into aware UTC."""
    if raw_value is None or raw_value == "":
        return None
    if isinstance(raw_value, datetime):
        return as_utc(raw_value)
    value = str(raw_value).strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(value))


def parse_date(raw_value: str | date | None) -> date | None:
    """Parse a date (or the date part of a timestamp) from an adapter payload."""
    if raw_value is None or raw_value == "":
        return None
    if isinstance(raw_value, datetime):
        return raw_value.date()
    if isinstance(raw_value, date):
        return raw_value
    return date.fromisoformat(str(raw_value).strip()[:10])
