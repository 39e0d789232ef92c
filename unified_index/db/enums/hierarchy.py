"""Hierarchy and association enums."""

from enum import Enum


class LocationType(str, Enum):
    """Location node kinds; each kind sits at a fixed depth."""

    BUILDING = "building"
    LEVEL = "level"
    ROOM = "room"

    @property
    def depth(self) -> int:
        return _LOCATION_DEPTHS[self]


_LOCATION_DEPTHS = {
    LocationType.BUILDING: 0,
    LocationType.LEVEL: 1,
    LocationType.ROOM: 2,
}


class AssociationSource(str, Enum):
    """Who created an object <-> hierarchy link."""

    AUTO = "auto"
    MANUAL = "manual"


class TargetType(str, Enum):
    """Kinds of objects a hierarchy node can be associated with."""

    TASK = "task"
    CONVERSATION = "conversation"
    FILE = "file"
