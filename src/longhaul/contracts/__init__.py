"""Shared contracts: run record, statuses and the error taxonomy."""

from longhaul.contracts.enums import (
    ACTIVE_STATUSES,
    COMPLETED_STATUSES,
    STOPPED_STATUSES,
    STOPPING_STATUSES,
    RunStatus,
)
from longhaul.contracts.errors import (
    AbortIteration,
    ActiveRunExistsError,
    ConfigurationError,
    ContentAttachmentError,
    EnqueuingError,
    InvalidArgumentsError,
    InvalidCollectionError,
    InvalidStatusTransitionError,
    RetryNotSupportedError,
    RunNotFoundError,
    TaskNotFoundError,
)
from longhaul.contracts.run import STUCK_TASK_TIMEOUT, Run

__all__ = [
    "ACTIVE_STATUSES",
    "COMPLETED_STATUSES",
    "STOPPED_STATUSES",
    "STOPPING_STATUSES",
    "STUCK_TASK_TIMEOUT",
    "AbortIteration",
    "ActiveRunExistsError",
    "ConfigurationError",
    "ContentAttachmentError",
    "EnqueuingError",
    "InvalidArgumentsError",
    "InvalidCollectionError",
    "InvalidStatusTransitionError",
    "RetryNotSupportedError",
    "Run",
    "RunNotFoundError",
    "RunStatus",
    "TaskNotFoundError",
]
