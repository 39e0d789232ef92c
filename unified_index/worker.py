"""
Background worker for the ingestion queue.

Usage:
    python -m unified_index.worker

The worker claims pending queue items, applies them to the base records and
runs the periodic stuck-work sweeps. Run as many worker processes as needed;
claims never overlap.
"""

import asyncio
import logging
import os
import socket
import time
from typing import Callable

from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.core.structured_logging import build_log_context
from unified_index.db.session import SessionLocal
from unified_index.jobs.registry import resolve_job_handler
from unified_index.services import (
    app_config_service,
    content_store_service,
    hierarchy_service,
    ingestion_queue_service,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

SWEEPS: dict[str, Callable[[Session], int]] = {
    "queue": ingestion_queue_service.reset_stuck_items,
    "uploads": content_store_service.reset_stuck_uploads,
    "indexing": content_store_service.reset_stuck_indexing,
}


PERMANENT_ERRORS = (ValueError, hierarchy_service.HierarchyError)


def build_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


async def process_item(db: Session, item, worker_id: str) -> bool:
    """
    Apply one claimed item and record the outcome on the queue.

    Returns True on success. Unknown job types, other ``ValueError`` and
    hierarchy errors are permanent and dead-letter the item; anything else,
    including a failed completion commit, is retried with backoff.
    """
    item_id = item.id
    event_type = item.event_type
    log_context = build_log_context(worker_id=worker_id, source=item.source, item_id=item_id)
    started = time.monotonic()
    try:
        handler = resolve_job_handler(item.source, event_type)
        await handler(db, item)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        # Commits the handler's writes together with the completion
        ingestion_queue_service.mark_completed(db, item_id, processing_time_ms=elapsed_ms)
    except PERMANENT_ERRORS as exc:
        db.rollback()
        ingestion_queue_service.mark_failed(db, item_id, f"{type(exc).__name__}: {exc}", retry=False)
        logger.error("Queue item %s rejected: %s", item_id, exc, extra=log_context)
        return False
    except Exception as exc:
        db.rollback()
        ingestion_queue_service.mark_failed(db, item_id, f"{type(exc).__name__}: {exc}", retry=True)
        logger.error("Queue item %s failed: %s", item_id, type(exc).__name__, extra=log_context)
        return False

    logger.info("Queue item %s (%s) completed", item_id, event_type, extra=log_context)
    return True


def run_due_sweeps(db: Session, last_run: dict[str, float], now: float | None = None) -> dict[str, int]:
    """Run each sweep whose interval has elapsed. Returns the rows reset per sweep."""
    now = time.monotonic() if now is None else now
    results: dict[str, int] = {}
    for name, sweep in SWEEPS.items():
        previous = last_run.get(name)
        if previous is not None and now - previous < settings.WORKER_SWEEP_INTERVAL_SECONDS:
            continue
        try:
            results[name] = sweep(db)
        except Exception as exc:
            db.rollback()
            logger.error("Sweep %s failed: %s", name, exc)
        last_run[name] = now
    return results


async def worker_loop(worker_id: str | None = None, max_iterations: int | None = None) -> None:
    """Main worker loop - polls for and processes pending queue items."""
    worker_id = worker_id or build_worker_id()
    log_context = build_log_context(worker_id=worker_id)
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
        extra=log_context,
    )
    with SessionLocal() as db:
        app_config_service.load_app_config(db)

    last_sweep: dict[str, float] = {}
    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        with SessionLocal() as db:
            try:
                run_due_sweeps(db, last_sweep)
                items = ingestion_queue_service.dequeue(db, worker_id, max_items=settings.WORKER_BATCH_SIZE)
                for item in items:
                    await process_item(db, item, worker_id)
            except Exception as exc:
                db.rollback()
                logger.error("Error in worker loop: %s", exc, extra=log_context)
        if max_iterations is None or iterations < max_iterations:
            await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception("Worker crashed", extra=build_log_context(route="worker", method="background"))
        raise


if __name__ == "__main__":
    main()
