"""CLI tools for operating the unified index."""

import json
import uuid

import click

from unified_index.db.session import SessionLocal
from unified_index.services import (
    aggregation_service,
    app_config_service,
    bulk_service,
    checkpoint_service,
    content_store_service,
    ingestion_queue_service,
    operation_run_service,
)


@click.group()
def cli():
    """Unified index CLI tools."""
    pass


@cli.command()
@click.option("--source", required=True, help="Source system (teamwork, missive, craft)")
@click.option("--event-type", required=True, help="Event type, e.g. task.upsert")
@click.option("--external-id", required=True, help="Record id in the source system")
@click.option("--payload", default="{}", help="JSON payload")
def enqueue(source: str, event_type: str, external_id: str, payload: str):
    """
    Add an item to the ingestion queue.

    Example:
        unified-index enqueue --source teamwork --event-type task.upsert --external-id 42 --payload '{"name": "Fix roof"}'
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        click.echo(f"❌ Invalid payload: {e}")
        raise SystemExit(1)

    db = SessionLocal()
    try:
        item = ingestion_queue_service.enqueue(db, source, event_type, external_id, data)
        click.echo(f"✓ Enqueued item {item.id} ({item.source}/{item.event_type})")
    except ingestion_queue_service.IngestionQueueError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


def _echo_refresh_results(results: list[tuple[str, bool]]) -> None:
    for segment, refreshed in results:
        marker = "✓" if refreshed else "·"
        click.echo(f"  {marker} {segment}: {'refreshed' if refreshed else 'skipped'}")


@cli.command()
def refresh_stale():
    """Refresh aggregation segments that are flagged or past their interval."""
    db = SessionLocal()
    try:
        app_config_service.load_app_config(db)
        results = aggregation_service.refresh_stale(db)
        _echo_refresh_results(results)
    finally:
        db.close()


@cli.command()
@click.option("--blocking", is_flag=True, help="Rebuild each segment instead of merging")
def refresh_all(blocking: bool):
    """Refresh every aggregation segment."""
    db = SessionLocal()
    try:
        app_config_service.load_app_config(db)
        results = aggregation_service.refresh_all(db, concurrent=not blocking)
        _echo_refresh_results(results)
    finally:
        db.close()


@cli.command()
def queue_maintenance():
    """Reset stuck queue, upload and indexing work and purge old completed items."""
    db = SessionLocal()
    try:
        stuck = ingestion_queue_service.reset_stuck_items(db)
        purged = ingestion_queue_service.cleanup_old_items(db)
        uploads = content_store_service.reset_stuck_uploads(db)
        indexing = content_store_service.reset_stuck_indexing(db)
        click.echo(f"✓ Reset {stuck} stuck queue item(s), purged {purged} completed item(s)")
        click.echo(f"✓ Reset {uploads} stuck upload(s) and {indexing} stuck indexing record(s)")
    finally:
        db.close()


@cli.command()
@click.argument("run_type")
def rerun(run_type: str):
    """
    Re-run a bulk derivation over every record.

    Example:
        unified-index rerun location_linking
    """
    db = SessionLocal()
    try:
        app_config_service.load_app_config(db)
        run_id = bulk_service.run_bulk_operation(db, run_type)
        run = operation_run_service.get_run_status(db, run_id)
        click.echo(f"✓ {run.run_type} run {run.id}: {run.status}")
        click.echo(
            f"  processed={run.processed_count} created={run.created_count} "
            f"linked={run.linked_count} skipped={run.skipped_count}"
        )
    except operation_run_service.OperationRunError as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.argument("run_id")
def run_status(run_id: str):
    """Show the progress of an operation run."""
    db = SessionLocal()
    try:
        run = operation_run_service.get_run_status(db, uuid.UUID(run_id))
    except (ValueError, operation_run_service.OperationRunError) as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    else:
        click.echo(f"{run.run_type} run {run.id}: {run.status} ({run.progress_percent}%)")
        click.echo(
            f"  processed={run.processed_count}/{run.total_count} created={run.created_count} "
            f"linked={run.linked_count} skipped={run.skipped_count}"
        )
        if run.error_message:
            click.echo(f"  error: {run.error_message}")
    finally:
        db.close()


@cli.command()
def sync_status():
    """Show checkpoints and queue backlog per source."""
    db = SessionLocal()
    try:
        for status in checkpoint_service.get_sync_status(db):
            last = status["last_event_time"].isoformat() if status["last_event_time"] else "never"
            click.echo(
                f"{status['source']}: last event {last}, pending={status['pending_count']} "
                f"processing={status['processing_count']} failed={status['failed_count']}"
            )
    finally:
        db.close()


@cli.command()
def worker():
    """Run the ingestion queue worker."""
    from unified_index.worker import main

    main()


if __name__ == "__main__":
    cli()
