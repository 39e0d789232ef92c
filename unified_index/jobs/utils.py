"""Shared helpers for queue item handlers."""

from __future__ import annotations

from typing import Any, Callable, Iterable


def payload_of(item) -> dict[str, Any]:
    return item.payload or {}


def apply_fields(
    record,
    payload: dict[str, Any],
    fields: Iterable[str],
    converters: dict[str, Callable[[Any], Any]] | None = None,
) -> bool:
    """
    Copy the fields present in ``payload`` onto ``record``.

    Absent keys leave the column untouched; an explicit null clears it.
    Returns True when any value changed.
    """
    converters = converters or {}
    changed = False
    for field_name in fields:
        if field_name not in payload:
            continue
        value = payload[field_name]
        convert = converters.get(field_name)
        if convert is not None:
            value = convert(value)
        if getattr(record, field_name) != value:
            setattr(record, field_name, value)
            changed = True
    return changed


def id_list(payload: dict[str, Any], key: str) -> list[str] | None:
    """String ids under ``key``; None when the key is absent."""
    if key not in payload:
        return None
    return [str(value) for value in payload.get(key) or [] if value is not None]


def optional_id(value: Any) -> str | None:
    return None if value is None or value == "" else str(value)

