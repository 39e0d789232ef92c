"""Craft document queue item handlers."""

from __future__ import annotations

import logging

from unified_index.db.models import CraftDocument
from unified_index.jobs.utils import apply_fields, payload_of
from unified_index.utils.datetime_parsing import parse_datetime, utcnow

logger = logging.getLogger(__name__)


async def process_document_upsert(db, item) -> None:
    payload = payload_of(item)
    document = db.get(CraftDocument, item.external_id)
    if document is None:
        document = CraftDocument(id=item.external_id)
        db.add(document)
    apply_fields(document, payload, ("title", "markdown_content", "folder_path"))
    if payload.get("created_at"):
        document.created_at = parse_datetime(payload["created_at"])
    document.updated_at = parse_datetime(payload.get("updated_at")) or utcnow()
    db.flush()


async def process_document_delete(db, item) -> None:
    document = db.get(CraftDocument, item.external_id)
    if document is None:
        logger.info("Delete for unknown craft document %s ignored", item.external_id)
        return
    db.delete(document)
    db.flush()
