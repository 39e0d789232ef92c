"""Projection service - flatten base records into aggregated item rows.

One projection per item type. Each returns plain dicts keyed by
``AggregatedItem`` column names, ready to be merged into ``unified_items``.
Related rows are bulk-loaded per projection, never per item.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from unified_index.db.enums import ItemType, TargetType
from unified_index.db.models import (
    ContentRecord,
    CostGroup,
    CraftDocument,
    File,
    Location,
    MAttachment,
    MContact,
    MConversation,
    MConversationAssignee,
    MConversationComment,
    MConversationLabel,
    MMessage,
    MMessageRecipient,
    MSharedLabel,
    MUser,
    ObjectCostGroup,
    ObjectLocation,
    ProjectConversation,
    TaskExtension,
    TaskType,
    TwProject,
    TwTask,
    TwUser,
)
from unified_index.services.hierarchy_service import ancestor_ids
from unified_index.utils.normalization import join_nonempty, normalize_email

ProjectedRow = dict[str, Any]

DESCRIPTION_PREVIEW_CHARS = 200


def format_person(name: str | None, email: str | None) -> str | None:
    """``Name <email>``, or whichever half is present."""
    name = (name or "").strip()
    email = (email or "").strip()
    if name and email:
        return f"{name} <{email}>"
    if email:
        return f"<{email}>"
    return name or None


def file_extension(path: str | None) -> str | None:
    filename = (path or "").rstrip("/").rsplit("/", 1)[-1]
    if "." not in filename:
        return None
    extension = filename.rsplit(".", 1)[-1].lower()
    return extension or None


def blank_row(item_id: str, item_type: ItemType) -> ProjectedRow:
    return {
        "id": str(item_id),
        "type": item_type.value,
        "name": None,
        "description": None,
        "body": None,
        "preview": None,
        "status": None,
        "project_id": None,
        "project": None,
        "customer": None,
        "location": None,
        "location_path": None,
        "cost_group": None,
        "cost_group_code": None,
        "due_date": None,
        "priority": None,
        "progress": None,
        "tasklist": None,
        "task_type_id": None,
        "task_type_name": None,
        "task_type_color": None,
        "assigned_to": [],
        "tags": [],
        "creator": None,
        "conversation_subject": None,
        "recipients": [],
        "attachments": None,
        "attachment_count": 0,
        "storage_path": None,
        "thumbnail_path": None,
        "file_extension": None,
        "created_at": None,
        "updated_at": None,
        "sort_date": None,
        "search_text": "",
        "assignee_search_text": "",
        "tag_names_text": "",
        "location_ids": [],
        "cost_group_ids": [],
        "involved_emails": [],
    }


# =============================================================================
# Hierarchy associations
# =============================================================================


@dataclass
class TargetAssociations:
    locations: list[Location] = field(default_factory=list)
    cost_groups: list[CostGroup] = field(default_factory=list)


def load_associations(db: Session, target_type: TargetType) -> dict[str, TargetAssociations]:
    """Location and cost-group nodes per target id, in link order."""
    result: dict[str, TargetAssociations] = defaultdict(TargetAssociations)
    location_rows = db.execute(
        select(ObjectLocation.target_id, Location)
        .join(Location, Location.id == ObjectLocation.location_id)
        .where(ObjectLocation.target_type == target_type.value)
        .order_by(ObjectLocation.id)
    ).all()
    for target_id, location in location_rows:
        if location not in result[target_id].locations:
            result[target_id].locations.append(location)

    cost_group_rows = db.execute(
        select(ObjectCostGroup.target_id, CostGroup)
        .join(CostGroup, CostGroup.id == ObjectCostGroup.cost_group_id)
        .where(ObjectCostGroup.target_type == target_type.value)
        .order_by(ObjectCostGroup.id)
    ).all()
    for target_id, cost_group in cost_group_rows:
        if cost_group not in result[target_id].cost_groups:
            result[target_id].cost_groups.append(cost_group)
    return result


def apply_associations(row: ProjectedRow, associations: TargetAssociations | None) -> list[str]:
    """Fill hierarchy columns; returns the names that feed search text."""
    if associations is None:
        return []
    names: list[str] = []
    if associations.locations:
        first = associations.locations[0]
        row["location"] = first.name
        row["location_path"] = first.search_text
        row["location_ids"] = ancestor_ids(associations.locations)
        names.extend(location.search_text for location in associations.locations)
    if associations.cost_groups:
        first = associations.cost_groups[0]
        row["cost_group"] = first.name
        row["cost_group_code"] = first.code
        row["cost_group_ids"] = sorted({cost_group.id for cost_group in associations.cost_groups})
        names.extend(cost_group.label for cost_group in associations.cost_groups)
    return names


# =============================================================================
# Tasks
# =============================================================================


def project_tasks(db: Session) -> list[ProjectedRow]:
    tasks = db.execute(
        select(TwTask)
        .where(TwTask.deleted_at.is_(None))
        .options(
            selectinload(TwTask.project).selectinload(TwProject.company),
            selectinload(TwTask.tasklist),
            selectinload(TwTask.tags),
            selectinload(TwTask.assignees),
        )
        .order_by(TwTask.id)
    ).scalars().all()

    creator_ids = sorted({task.created_by_id for task in tasks if task.created_by_id})
    creators = {
        user.id: user
        for user in db.execute(select(TwUser).where(TwUser.id.in_(creator_ids))).scalars()
    } if creator_ids else {}
    task_types = {
        task_id: task_type
        for task_id, task_type in db.execute(
            select(TaskExtension.task_id, TaskType).join(
                TaskType, TaskType.id == TaskExtension.task_type_id
            )
        ).all()
    }
    associations = load_associations(db, TargetType.TASK)

    rows: list[ProjectedRow] = []
    for task in tasks:
        row = blank_row(task.id, ItemType.TASK)
        project = task.project
        company = project.company if project else None
        creator = creators.get(task.created_by_id)
        task_type = task_types.get(task.id)
        assignee_names = [user.full_name or user.email or user.id for user in task.assignees]
        tag_names = [tag.name for tag in task.tags]

        row.update(
            name=task.name,
            description=task.description,
            status=task.status,
            priority=task.priority,
            progress=task.progress,
            due_date=task.due_date,
            project_id=task.project_id,
            project=project.name if project else None,
            customer=company.name if company else None,
            tasklist=task.tasklist.name if task.tasklist else None,
            task_type_id=task_type.id if task_type else None,
            task_type_name=task_type.name if task_type else None,
            task_type_color=task_type.color if task_type else None,
            assigned_to=assignee_names,
            tags=tag_names,
            creator=format_person(creator.full_name, creator.email) if creator else None,
            created_at=task.created_at,
            updated_at=task.updated_at,
            sort_date=task.updated_at,
            assignee_search_text=join_nonempty(assignee_names),
            tag_names_text=join_nonempty(tag_names),
        )
        hierarchy_names = apply_associations(row, associations.get(task.id))
        row["search_text"] = join_nonempty(
            [
                task.name,
                task.description,
                row["project"],
                row["customer"],
                row["tasklist"],
                row["creator"],
                *tag_names,
                *assignee_names,
                *hierarchy_names,
            ]
        )
        rows.append(row)
    return rows


# =============================================================================
# Emails (one row per message)
# =============================================================================


def _group(rows, key_index: int = 0) -> dict[str, list]:
    grouped: dict[str, list] = defaultdict(list)
    for row in rows:
        grouped[row[key_index]].append(row)
    return grouped


def project_emails(db: Session) -> list[ProjectedRow]:
    messages = db.execute(
        select(MMessage)
        .options(selectinload(MMessage.conversation), selectinload(MMessage.from_contact))
        .order_by(MMessage.id)
    ).scalars().all()

    recipients = _group(
        db.execute(
            select(MMessageRecipient.message_id, MContact.name, MContact.email)
            .join(MContact, MContact.id == MMessageRecipient.contact_id)
            .order_by(MMessageRecipient.message_id, MContact.email)
        ).all()
    )
    attachments = _group(
        db.execute(
            select(
                MAttachment.message_id,
                MAttachment.filename,
                MAttachment.extension,
                MAttachment.size,
                MAttachment.url,
            ).order_by(MAttachment.message_id, MAttachment.id)
        ).all()
    )
    labels = _group(
        db.execute(
            select(MConversationLabel.conversation_id, MSharedLabel.name)
            .join(MSharedLabel, MSharedLabel.id == MConversationLabel.label_id)
            .order_by(MConversationLabel.conversation_id, MSharedLabel.name)
        ).all()
    )
    assignees = _group(
        db.execute(
            select(MConversationAssignee.conversation_id, MUser.name, MUser.email)
            .join(MUser, MUser.id == MConversationAssignee.user_id)
            .order_by(MConversationAssignee.conversation_id, MUser.name)
        ).all()
    )
    comments = _group(
        db.execute(
            select(MConversationComment.conversation_id, MConversationComment.body)
            .order_by(MConversationComment.conversation_id, MConversationComment.created_at)
        ).all()
    )
    projects = _group(
        db.execute(
            select(ProjectConversation.conversation_id, TwProject.id, TwProject.name)
            .join(TwProject, TwProject.id == ProjectConversation.project_id)
            .order_by(ProjectConversation.conversation_id, ProjectConversation.created_at, TwProject.name)
        ).all()
    )
    associations = load_associations(db, TargetType.CONVERSATION)

    rows: list[ProjectedRow] = []
    for message in messages:
        conversation_id = message.conversation_id
        row = blank_row(message.id, ItemType.EMAIL)
        sender = message.from_contact
        message_recipients = recipients.get(message.id, [])
        message_attachments = attachments.get(message.id, [])
        label_names = [name for _, name in labels.get(conversation_id, [])]
        assignee_names = [name or email for _, name, email in assignees.get(conversation_id, []) if name or email]
        comment_text = join_nonempty(body for _, body in comments.get(conversation_id, []))
        linked_projects = projects.get(conversation_id, [])
        recipient_labels = [format_person(name, email) for _, name, email in message_recipients]
        attachment_payload = [
            {"filename": filename, "extension": extension, "size": size, "url": url}
            for _, filename, extension, size, url in message_attachments
        ]
        extensions = sorted(
            {(extension or "").lower() for _, _, extension, _, _ in message_attachments if extension}
        )
        involved = {
            normalize_email(email)
            for email in [sender.email if sender else None]
            + [email for _, _, email in message_recipients]
        }
        involved.discard(None)

        preview = message.preview
        if not preview and message.body_plain_text:
            preview = message.body_plain_text[:DESCRIPTION_PREVIEW_CHARS]
        conversation_subject = message.conversation.subject if message.conversation else None

        row.update(
            name=message.subject or conversation_subject,
            description=preview,
            body=message.body_plain_text,
            preview=message.preview,
            project_id=linked_projects[0][1] if linked_projects else None,
            project=linked_projects[0][2] if linked_projects else None,
            assigned_to=assignee_names,
            tags=label_names,
            creator=format_person(sender.name, sender.email) if sender else None,
            conversation_subject=conversation_subject,
            recipients=[label for label in recipient_labels if label],
            attachments=attachment_payload or None,
            attachment_count=len(attachment_payload),
            file_extension=", ".join(extensions) or None,
            created_at=message.delivered_at or message.created_at,
            updated_at=message.updated_at or message.delivered_at,
            sort_date=message.delivered_at or message.created_at,
            assignee_search_text=join_nonempty(assignee_names),
            tag_names_text=join_nonempty(label_names),
            involved_emails=sorted(involved),
        )
        hierarchy_names = apply_associations(row, associations.get(conversation_id))
        row["search_text"] = join_nonempty(
            [
                message.subject,
                message.preview,
                message.body_plain_text,
                conversation_subject,
                comment_text,
                row["creator"],
                *(name for _, _, name in linked_projects),
                *row["recipients"],
                *(item["filename"] for item in attachment_payload),
                *label_names,
                *assignee_names,
                *hierarchy_names,
            ]
        )
        rows.append(row)
    return rows


# =============================================================================
# Craft documents and files
# =============================================================================


def project_craft_documents(db: Session) -> list[ProjectedRow]:
    documents = db.execute(select(CraftDocument).order_by(CraftDocument.id)).scalars().all()
    rows: list[ProjectedRow] = []
    for document in documents:
        row = blank_row(document.id, ItemType.CRAFT)
        row.update(
            name=document.title,
            description=document.folder_path,
            body=document.markdown_content,
            created_at=document.created_at,
            updated_at=document.updated_at,
            sort_date=document.updated_at,
            search_text=join_nonempty(
                [document.title, document.folder_path, document.markdown_content]
            ),
        )
        rows.append(row)
    return rows


def project_files(db: Session) -> list[ProjectedRow]:
    files = db.execute(
        select(File, ContentRecord)
        .join(ContentRecord, ContentRecord.content_hash == File.content_hash)
        .order_by(File.id)
    ).all()
    project_ids = sorted({file.project_id for file, _ in files if file.project_id})
    project_names = dict(
        db.execute(select(TwProject.id, TwProject.name).where(TwProject.id.in_(project_ids))).all()
    ) if project_ids else {}
    associations = load_associations(db, TargetType.FILE)

    rows: list[ProjectedRow] = []
    for file, content in files:
        row = blank_row(file.id, ItemType.FILE)
        row.update(
            name=file.filename,
            description=file.full_path,
            body=content.extracted_text,
            project_id=file.project_id,
            project=project_names.get(file.project_id),
            storage_path=content.storage_path,
            thumbnail_path=content.thumbnail_path,
            file_extension=file_extension(file.full_path),
            created_at=file.created_at,
            updated_at=file.updated_at,
            sort_date=file.updated_at,
        )
        hierarchy_names = apply_associations(row, associations.get(file.id))
        row["search_text"] = join_nonempty(
            [file.full_path, row["project"], content.extracted_text, *hierarchy_names]
        )
        rows.append(row)
    return rows


PROJECTIONS: dict[str, Callable[[Session], list[ProjectedRow]]] = {
    ItemType.TASK.value: project_tasks,
    ItemType.EMAIL.value: project_emails,
    ItemType.CRAFT.value: project_craft_documents,
    ItemType.FILE.value: project_files,
}


def project_segment(db: Session, segment: str) -> list[ProjectedRow]:
    """Rows for one segment (item type)."""
    return PROJECTIONS[ItemType(segment).value](db)
