"""Shared type aliases and the association target variant."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, TypeAlias, Union

from unified_index.db.enums import TargetType

JsonValue: TypeAlias = object
JsonObject: TypeAlias = dict[str, JsonValue]
JsonArray: TypeAlias = list[JsonValue]


@dataclass(frozen=True)
class TaskTarget:
    id: str
    kind: ClassVar[TargetType] = TargetType.TASK


@dataclass(frozen=True)
class ConversationTarget:
    id: str
    kind: ClassVar[TargetType] = TargetType.CONVERSATION


@dataclass(frozen=True)
class FileTarget:
    id: str
    kind: ClassVar[TargetType] = TargetType.FILE


# Exactly one kind of object per association row
AssociationTarget: TypeAlias = Union[TaskTarget, ConversationTarget, FileTarget]

_TARGETS_BY_KIND: dict[str, type] = {
    TargetType.TASK.value: TaskTarget,
    TargetType.CONVERSATION.value: ConversationTarget,
    TargetType.FILE.value: FileTarget,
}


def target_from_columns(target_type: str, target_id: str) -> AssociationTarget:
    """Rebuild a target from its stored ``target_type`` / ``target_id`` pair."""
    try:
        target_cls = _TARGETS_BY_KIND[target_type]
    except KeyError as exc:
        raise ValueError(f"Unknown association target type: {target_type}") from exc
    return target_cls(id=str(target_id))
