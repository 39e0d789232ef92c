"""Synchronous in-process event dispatch."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from unified_index.events.handlers import EVENT_HANDLERS
from unified_index.events.types import DomainEvent

logger = logging.getLogger(__name__)


def publish(db: Session, event: DomainEvent) -> int:
    """
    Run every handler registered for the event, in order, in the caller's transaction.

    Handler exceptions propagate so the triggering write is rejected with them.
    Returns the number of handlers run.
    """
    handlers = EVENT_HANDLERS.get(type(event), ())
    for handler in handlers:
        handler(db, event)
    if handlers:
        logger.debug("Dispatched %s to %d handler(s)", type(event).__name__, len(handlers))
    return len(handlers)
