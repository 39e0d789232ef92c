"""Queue item handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from unified_index.db.enums import QueueSource
from unified_index.jobs.handlers import craft, missive, teamwork

JobHandler = Callable[[object, object], Awaitable[None]]

_TEAMWORK = QueueSource.TEAMWORK.value
_MISSIVE = QueueSource.MISSIVE.value
_CRAFT = QueueSource.CRAFT.value

JOB_HANDLERS: Mapping[tuple[str, str], JobHandler] = {
    (_TEAMWORK, "company.upsert"): teamwork.process_company_upsert,
    (_TEAMWORK, "user.upsert"): teamwork.process_user_upsert,
    (_TEAMWORK, "tag.upsert"): teamwork.process_tag_upsert,
    (_TEAMWORK, "project.upsert"): teamwork.process_project_upsert,
    (_TEAMWORK, "tasklist.upsert"): teamwork.process_tasklist_upsert,
    (_TEAMWORK, "task.upsert"): teamwork.process_task_upsert,
    (_TEAMWORK, "task.delete"): teamwork.process_task_delete,
    (_MISSIVE, "contact.upsert"): missive.process_contact_upsert,
    (_MISSIVE, "user.upsert"): missive.process_user_upsert,
    (_MISSIVE, "label.upsert"): missive.process_label_upsert,
    (_MISSIVE, "conversation.upsert"): missive.process_conversation_upsert,
    (_MISSIVE, "message.upsert"): missive.process_message_upsert,
    (_MISSIVE, "comment.upsert"): missive.process_comment_upsert,
    (_CRAFT, "document.upsert"): craft.process_document_upsert,
    (_CRAFT, "document.delete"): craft.process_document_delete,
}


def resolve_job_handler(source: str, event_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get((source, event_type))
    if not handler:
        raise ValueError(f"Unknown job type: {source}/{event_type}")
    return handler
