"""Error taxonomy for Longhaul.

Configuration errors are raised synchronously when a task class is defined
or a run is created, never during iteration. Status transition errors come
from the store's validation before a write is committed. AbortIteration is
not an error: it is the control flow signal a coordinator uses to stop the
host's iteration without running completion callbacks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from longhaul.contracts.run import Run


class ConfigurationError(Exception):
    """Base class for errors in how a task or run is configured."""


class TaskNotFoundError(ConfigurationError):
    """Raised when no task is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Task {name} not found.")


class InvalidArgumentsError(ConfigurationError):
    """Raised when run arguments do not match the task's argument schema."""


class InvalidCollectionError(ConfigurationError):
    """Raised when a task's collection is not one of the supported shapes."""


class RetryNotSupportedError(ConfigurationError):
    """Raised when a task declares its own retry policy.

    The engine owns all error handling, so a competing retry mechanism is
    rejected when the task class is defined.
    """


class ContentAttachmentError(ConfigurationError):
    """Raised when CSV content is missing for a CSV task or given to a non-CSV task."""


class ActiveRunExistsError(ConfigurationError):
    """Raised when a task already has an active run."""

    def __init__(self, run: Run) -> None:
        self.run = run
        super().__init__(f"Task {run.task_name} already has an active run ({run.run_id}, {run.status.value}).")


class RunNotFoundError(Exception):
    """Raised when a run id does not exist in the store."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} not found.")


class InvalidStatusTransitionError(Exception):
    """Raised when a write would move a run through an illegal status transition."""

    def __init__(self, run_id: str, from_status: str, to_status: str) -> None:
        self.run_id = run_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Run {run_id}: cannot transition from {from_status} to {to_status}.")


class EnqueuingError(Exception):
    """Raised when the job for a newly created run could not be enqueued.

    The run has already been marked errored when this is raised.
    """

    def __init__(self, run: Run) -> None:
        self.run = run
        super().__init__(f"The job to perform {run.task_name} could not be enqueued.")


class AbortIteration(Exception):  # noqa: N818 - control flow signal, not an error
    """Raised by a coordinator to stop the host's iteration early.

    This is NOT an error condition. The host catches it, skips completion
    callbacks and proceeds straight to shutdown handling.
    """
