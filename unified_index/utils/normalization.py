"""Normalization helpers for matching names, emails and search input."""

from typing import Optional


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    collapsed = " ".join(name.split())
    return collapsed or None


def normalize_search_text(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace and trim user search input; None if nothing is left."""
    if not value:
        return None
    collapsed = " ".join(value.split())
    return collapsed or None


def escape_like_string(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally (escape char is backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def join_nonempty(parts, separator: str = " ") -> str:
    """Join the truthy string parts."""
    return separator.join(p for p in parts if p)
