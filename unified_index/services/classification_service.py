"""Classification service - derive associations, task types and project links from tags.

Tasks carry teamwork tags and conversations carry missive shared labels.
Derived rows are always rebuilt wholesale for one item (delete-then-reinsert)
so the auto-sourced state matches the item's current tags once the enclosing
transaction commits. Manual rows are never touched by re-derivation.

Nothing here commits; callers own the transaction.
"""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from unified_index.db.enums import AssociationSource, ProjectLinkSource, TaskTypeSource
from unified_index.db.models import (
    MConversation,
    MConversationLabel,
    MSharedLabel,
    ObjectCostGroup,
    ObjectLocation,
    ProjectConversation,
    TaskExtension,
    TaskType,
    TaskTypeRule,
    TwProject,
    TwTag,
    TwTask,
    tw_task_tags,
)
from unified_index.services import hierarchy_service
from unified_index.types import AssociationTarget, ConversationTarget, TaskTarget

logger = logging.getLogger(__name__)


# =============================================================================
# Tag lookup
# =============================================================================


def task_tag_names(db: Session, task_id: str) -> list[str]:
    return list(
        db.execute(
            select(TwTag.name)
            .join(tw_task_tags, tw_task_tags.c.tag_id == TwTag.id)
            .where(tw_task_tags.c.task_id == task_id)
            .order_by(TwTag.name)
        ).scalars()
    )


def conversation_label_names(db: Session, conversation_id: str) -> list[str]:
    return list(
        db.execute(
            select(MSharedLabel.name)
            .join(MConversationLabel, MConversationLabel.label_id == MSharedLabel.id)
            .where(MConversationLabel.conversation_id == conversation_id)
            .order_by(MSharedLabel.name)
        ).scalars()
    )


def tag_names_for(db: Session, target: AssociationTarget) -> list[str]:
    """Current tag names of a target; files carry no tags."""
    if isinstance(target, TaskTarget):
        return task_tag_names(db, target.id)
    if isinstance(target, ConversationTarget):
        return conversation_label_names(db, target.id)
    return []


# =============================================================================
# Location / cost-group associations
# =============================================================================


def _delete_auto(db: Session, model, target: AssociationTarget) -> None:
    db.execute(
        delete(model)
        .where(
            model.target_type == target.kind.value,
            model.target_id == target.id,
            model.source == AssociationSource.AUTO.value,
        )
        .execution_options(synchronize_session="fetch")
    )


def rederive_locations(db: Session, target: AssociationTarget) -> int:
    """Rebuild auto location links from the target's tags. Returns links created."""
    _delete_auto(db, ObjectLocation, target)
    seen: set[int] = set()
    for tag_name in tag_names_for(db, target):
        parsed = hierarchy_service.parse_location_tag(tag_name)
        if parsed is None:
            continue
        room = hierarchy_service.get_or_create_location(
            db, parsed.building, parsed.level, parsed.room
        )
        if room.id in seen:
            continue
        seen.add(room.id)
        db.add(
            ObjectLocation(
                location_id=room.id,
                target_type=target.kind.value,
                target_id=target.id,
                source=AssociationSource.AUTO.value,
                source_tag_name=tag_name,
            )
        )
    db.flush()
    return len(seen)


def rederive_cost_groups(db: Session, target: AssociationTarget) -> int:
    """Rebuild auto cost-group links from the target's tags. Returns links created."""
    _delete_auto(db, ObjectCostGroup, target)
    seen: set[int] = set()
    for tag_name in tag_names_for(db, target):
        parsed = hierarchy_service.parse_cost_group_tag(tag_name)
        if parsed is None:
            continue
        cost_group = hierarchy_service.get_or_create_cost_group(db, parsed.code, parsed.name)
        if cost_group.id in seen:
            continue
        seen.add(cost_group.id)
        db.add(
            ObjectCostGroup(
                cost_group_id=cost_group.id,
                target_type=target.kind.value,
                target_id=target.id,
                source=AssociationSource.AUTO.value,
                source_tag_name=tag_name,
            )
        )
    db.flush()
    return len(seen)


def rederive_associations(db: Session, target: AssociationTarget) -> tuple[int, int]:
    """Rebuild both location and cost-group auto links. Returns (locations, cost_groups)."""
    return rederive_locations(db, target), rederive_cost_groups(db, target)


def add_manual_location(
    db: Session,
    target: AssociationTarget,
    location_id: int,
) -> ObjectLocation:
    existing = db.execute(
        select(ObjectLocation).where(
            ObjectLocation.location_id == location_id,
            ObjectLocation.target_type == target.kind.value,
            ObjectLocation.target_id == target.id,
            ObjectLocation.source == AssociationSource.MANUAL.value,
        )
    ).scalar_one_or_none()
    if existing:
        return existing
    link = ObjectLocation(
        location_id=location_id,
        target_type=target.kind.value,
        target_id=target.id,
        source=AssociationSource.MANUAL.value,
    )
    db.add(link)
    db.flush()
    return link


def add_manual_cost_group(
    db: Session,
    target: AssociationTarget,
    cost_group_id: int,
) -> ObjectCostGroup:
    existing = db.execute(
        select(ObjectCostGroup).where(
            ObjectCostGroup.cost_group_id == cost_group_id,
            ObjectCostGroup.target_type == target.kind.value,
            ObjectCostGroup.target_id == target.id,
            ObjectCostGroup.source == AssociationSource.MANUAL.value,
        )
    ).scalar_one_or_none()
    if existing:
        return existing
    link = ObjectCostGroup(
        cost_group_id=cost_group_id,
        target_type=target.kind.value,
        target_id=target.id,
        source=AssociationSource.MANUAL.value,
    )
    db.add(link)
    db.flush()
    return link


def list_location_links(db: Session, target: AssociationTarget) -> list[ObjectLocation]:
    return list(
        db.execute(
            select(ObjectLocation)
            .where(
                ObjectLocation.target_type == target.kind.value,
                ObjectLocation.target_id == target.id,
            )
            .order_by(ObjectLocation.id)
        ).scalars()
    )


def list_cost_group_links(db: Session, target: AssociationTarget) -> list[ObjectCostGroup]:
    return list(
        db.execute(
            select(ObjectCostGroup)
            .where(
                ObjectCostGroup.target_type == target.kind.value,
                ObjectCostGroup.target_id == target.id,
            )
            .order_by(ObjectCostGroup.id)
        ).scalars()
    )


# =============================================================================
# Task types
# =============================================================================


def _default_task_type_id(db: Session) -> int | None:
    return db.execute(
        select(TaskType.id).where(TaskType.is_default.is_(True)).order_by(TaskType.id).limit(1)
    ).scalar_one_or_none()


def extract_task_type(db: Session, task_id: str) -> TaskExtension | None:
    """
    Assign a task type from the task's tags.

    The first rule (by rule id) whose tag name matches one of the task's tags
    case-insensitively wins; otherwise the default type applies. A manual
    choice is left as it is. Returns None for an unknown task.
    """
    if db.get(TwTask, task_id) is None:
        return None

    lowered = sorted({name.lower() for name in task_tag_names(db, task_id)})
    task_type_id = None
    if lowered:
        task_type_id = db.execute(
            select(TaskTypeRule.task_type_id)
            .where(func.lower(TaskTypeRule.tag_name).in_(lowered))
            .order_by(TaskTypeRule.id)
            .limit(1)
        ).scalar_one_or_none()
    if task_type_id is None:
        task_type_id = _default_task_type_id(db)

    extension = db.get(TaskExtension, task_id)
    if extension is not None and extension.type_source == TaskTypeSource.MANUAL.value:
        return extension
    if extension is None:
        extension = TaskExtension(task_id=task_id)
        db.add(extension)
    extension.task_type_id = task_type_id
    extension.type_source = TaskTypeSource.AUTO.value
    db.flush()
    return extension


def set_manual_task_type(db: Session, task_id: str, task_type_id: int | None) -> TaskExtension:
    """Pin a task type chosen by a person; tag rules never override it."""
    extension = db.get(TaskExtension, task_id)
    if extension is None:
        extension = TaskExtension(task_id=task_id)
        db.add(extension)
    extension.task_type_id = task_type_id
    extension.type_source = TaskTypeSource.MANUAL.value
    db.flush()
    return extension


# =============================================================================
# Project <-> conversation links
# =============================================================================


def link_projects_for_conversation(db: Session, conversation_id: str) -> int:
    """
    Recompute label-derived project links for a conversation.

    A label whose name equals a project name (case-insensitive) links the two
    with source ``auto_label``. Auto links whose label is gone are removed;
    manual links are kept. Returns the number of links created.
    """
    if db.get(MConversation, conversation_id) is None:
        return 0

    labels_by_lower: dict[str, str] = {}
    for name in conversation_label_names(db, conversation_id):
        labels_by_lower.setdefault(name.lower(), name)

    matched: dict[str, str] = {}
    if labels_by_lower:
        projects = db.execute(
            select(TwProject.id, TwProject.name).where(
                func.lower(TwProject.name).in_(sorted(labels_by_lower))
            )
        ).all()
        for project_id, project_name in projects:
            matched[project_id] = labels_by_lower[project_name.lower()]

    existing = {
        link.project_id: link
        for link in db.execute(
            select(ProjectConversation).where(
                ProjectConversation.conversation_id == conversation_id
            )
        ).scalars()
    }

    for project_id, link in existing.items():
        if link.source == ProjectLinkSource.AUTO_LABEL.value and project_id not in matched:
            db.delete(link)

    created = 0
    for project_id, label_name in matched.items():
        if project_id in existing:
            continue
        db.add(
            ProjectConversation(
                project_id=project_id,
                conversation_id=conversation_id,
                source=ProjectLinkSource.AUTO_LABEL.value,
                source_label_name=label_name,
            )
        )
        created += 1
    db.flush()
    if created:
        logger.debug("Linked conversation %s to %d project(s) by label", conversation_id, created)
    return created
