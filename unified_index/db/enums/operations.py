"""Bulk operation enums."""

from enum import Enum


class RunType(str, Enum):
    """Bulk re-derivation operations that can be re-run administratively."""

    TASK_TYPE_EXTRACTION = "task_type_extraction"
    PERSON_LINKING = "person_linking"
    PROJECT_LINKING = "project_linking"
    COST_GROUP_LINKING = "cost_group_linking"
    LOCATION_LINKING = "location_linking"
    INVOLVEMENT_REBUILD = "involvement_rebuild"


class RunStatus(str, Enum):
    """Operation run status."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
