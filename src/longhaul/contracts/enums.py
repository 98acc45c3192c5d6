"""Run status codes and the status groupings derived from them.

Stored in the database (runs.status). Every grouping is a frozenset so
membership checks stay cheap in the per-element hot path.
"""

from enum import StrEnum


class RunStatus(StrEnum):
    """Status of a maintenance task run.

    Stored in the database (runs.status).
    """

    ENQUEUED = "enqueued"  # Waiting for a worker to pick it up
    RUNNING = "running"  # Being performed by a worker
    SUCCEEDED = "succeeded"  # Collection exhausted without error
    CANCELLING = "cancelling"  # Told to cancel, worker still finishing
    CANCELLED = "cancelled"  # Halted by an operator
    INTERRUPTED = "interrupted"  # Suspended by the job host, will resume
    PAUSING = "pausing"  # Told to pause, worker still finishing
    PAUSED = "paused"  # Halted by an operator, resumable
    ERRORED = "errored"  # Task code raised an unhandled exception


ACTIVE_STATUSES: frozenset[RunStatus] = frozenset(
    {
        RunStatus.ENQUEUED,
        RunStatus.RUNNING,
        RunStatus.PAUSED,
        RunStatus.PAUSING,
        RunStatus.CANCELLING,
        RunStatus.INTERRUPTED,
    }
)

STOPPING_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.PAUSING, RunStatus.CANCELLING})

COMPLETED_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.SUCCEEDED, RunStatus.ERRORED, RunStatus.CANCELLED})

STOPPED_STATUSES: frozenset[RunStatus] = COMPLETED_STATUSES | {RunStatus.PAUSED}
