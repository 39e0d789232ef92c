"""Structured logging helpers."""

from typing import Any


def build_log_context(
    *,
    worker_id: str | None = None,
    source: str | None = None,
    item_id: str | int | None = None,
    run_id: str | None = None,
    segment: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for ``extra=``, omitting empty values."""
    context: dict[str, Any] = {}
    if worker_id:
        context["worker_id"] = worker_id
    if source:
        context["source"] = source
    if item_id is not None:
        context["item_id"] = str(item_id)
    if run_id:
        context["run_id"] = run_id
    if segment:
        context["segment"] = segment
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
