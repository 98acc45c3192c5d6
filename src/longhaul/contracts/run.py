"""Run record contract.

Strict contract - status must be a RunStatus enum. The repository layer
handles string→enum conversion for DB reads.

A Run is a snapshot of the persisted record. It is never the source of
truth for coordination between the worker and operators; the store is.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from longhaul.contracts.enums import (
    ACTIVE_STATUSES,
    COMPLETED_STATUSES,
    STOPPED_STATUSES,
    STOPPING_STATUSES,
    RunStatus,
)

# A cancelling run not updated for this long is assumed to have lost its worker.
STUCK_TASK_TIMEOUT = timedelta(minutes=5)


@dataclass
class Run:
    """One persisted execution attempt of a task."""

    run_id: str
    task_name: str
    status: RunStatus
    arguments: dict[str, Any] = field(default_factory=dict)
    cursor: Any = None
    tick_count: int = 0
    tick_total: int | None = None
    time_running: float = 0.0
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error_class: str | None = None
    error_message: str | None = None
    backtrace: list[str] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, RunStatus):
            raise TypeError(f"status must be RunStatus, got {type(self.status).__name__}: {self.status!r}")

    @property
    def is_active(self) -> bool:
        """Enqueued, running, pausing, cancelling, paused or interrupted."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_stopping(self) -> bool:
        """Pausing or cancelling: a worker has been told to stop."""
        return self.status in STOPPING_STATUSES

    @property
    def is_stopped(self) -> bool:
        """Completed or paused."""
        return self.status in STOPPED_STATUSES

    @property
    def is_completed(self) -> bool:
        """Succeeded, cancelled or errored."""
        return self.status in COMPLETED_STATUSES

    @property
    def is_started(self) -> bool:
        return self.started_at is not None

    def is_stuck(self, now: datetime, timeout: timedelta = STUCK_TASK_TIMEOUT) -> bool:
        """Whether the run is cancelling and has not been touched within ``timeout``.

        Args:
            now: Current UTC time.
            timeout: How long a cancelling run may go without updates.

        Returns:
            True only for cancelling runs whose last update is older than timeout.
        """
        if self.status is not RunStatus.CANCELLING or self.updated_at is None:
            return False
        return self.updated_at <= now - timeout

    def time_to_completion(self) -> timedelta | None:
        """Estimate the time left from the average time spent per tick.

        Returns:
            The estimate, or None if the run is completed, nothing has been
            processed yet, the total is zero or unknown, or no time has been
            recorded.
        """
        if self.is_completed or self.tick_count == 0 or not self.tick_total:
            return None
        if self.time_running <= 0:
            return None

        processed_per_second = self.tick_count / self.time_running
        ticks_left = self.tick_total - self.tick_count
        return timedelta(seconds=ticks_left / processed_per_second)
