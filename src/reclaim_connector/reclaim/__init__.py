from reclaim_connector.reclaim.client import ReclaimClient
from reclaim_connector.reclaim.models import (
    PRIORITY_TO_RECLAIM,
    RECLAIM_TO_PRIORITY,
    Category,
    Priority,
    ReclaimTask,
    TaskCreate,
    TaskStatus,
    TaskUpdate,
    describe_validation_error,
    duration_to_chunks,
)

__all__ = [
    "PRIORITY_TO_RECLAIM",
    "RECLAIM_TO_PRIORITY",
    "Category",
    "Priority",
    "ReclaimClient",
    "ReclaimTask",
    "TaskCreate",
    "TaskStatus",
    "TaskUpdate",
    "describe_validation_error",
    "duration_to_chunks",
]
