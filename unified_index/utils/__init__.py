"""Utility modules."""

from unified_index.utils.datetime_parsing import as_utc, parse_datetime, parse_date, utcnow
from unified_index.utils.normalization import (
    escape_like_string,
    normalize_email,
    normalize_name,
    normalize_search_text,
)

__all__ = [
    # Datetime
    "as_utc",
    "parse_date",
    "parse_datetime",
    "utcnow",
    # Normalization
    "escape_like_string",
    "normalize_email",
    "normalize_name",
    "normalize_search_text",
]
