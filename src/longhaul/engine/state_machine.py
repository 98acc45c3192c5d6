# src/longhaul/engine/state_machine.py
"""Lifecycle operations on a run.

RunStateMachine wraps an in-memory Run snapshot and the RunStore. Status
changes requested here are validated by the store against the persisted
status when they are written, so a stale snapshot can never silently
overwrite an operator's pause or cancel.

Two kinds of operations:

- Immediate: running(), enqueued(), pause(), cancel(), persist_progress(),
  persist_error() and record_start() write to the store right away.
- Staged: complete() and shutdown() only change the snapshot; the
  coordinator writes it with save_shutdown() once the job is finished.
"""

from __future__ import annotations

from datetime import timedelta

import structlog

from longhaul.contracts import STOPPING_STATUSES, STUCK_TASK_TIMEOUT, InvalidStatusTransitionError, Run, RunStatus
from longhaul.core.backtrace import clean_backtrace
from longhaul.core.store import RunStore
from longhaul.engine.clock import DEFAULT_CLOCK, Clock
from longhaul.engine.enumerators import Cursor

logger = structlog.get_logger(__name__)


class RunStateMachine:
    """Status transitions and progress persistence for one run."""

    def __init__(
        self,
        store: RunStore,
        run: Run,
        *,
        clock: Clock = DEFAULT_CLOCK,
        stuck_timeout: timedelta = STUCK_TASK_TIMEOUT,
    ) -> None:
        self._store = store
        self._run = run
        self._clock = clock
        self._stuck_timeout = stuck_timeout

    @classmethod
    def load(
        cls,
        store: RunStore,
        run_id: str,
        *,
        clock: Clock = DEFAULT_CLOCK,
        stuck_timeout: timedelta = STUCK_TASK_TIMEOUT,
    ) -> RunStateMachine:
        return cls(store, store.get(run_id), clock=clock, stuck_timeout=stuck_timeout)

    @property
    def run(self) -> Run:
        return self._run

    @property
    def status(self) -> RunStatus:
        return self._run.status

    def running(self) -> None:
        """Mark the run running, unless it is stopping or stopped.

        A no-op when the snapshot is already stopping. Otherwise the store
        decides with a conditional update; when that loses to a concurrent
        stop request, or the run was stopped before this job started, the
        persisted status is read back instead.
        """
        if self._run.is_stopping:
            return
        if self._store.mark_running(self._run.run_id):
            self._run.status = RunStatus.RUNNING
        else:
            self.reload_status()

    def enqueued(self) -> None:
        """Move the run back to enqueued. Always validated, even from enqueued."""
        self._write(RunStatus.ENQUEUED, force_status_check=True)

    def pause(self) -> None:
        self._write(RunStatus.PAUSING)

    def cancel(self) -> None:
        """Request cancellation.

        Paused runs have no worker to finish the cancellation, and stuck runs
        have lost theirs, so both are cancelled immediately.
        """
        if self._run.status is RunStatus.PAUSED or self.is_stuck():
            self._write(RunStatus.CANCELLED, ended_at=True)
        else:
            self._write(RunStatus.CANCELLING)

    def is_stuck(self) -> bool:
        return self._run.is_stuck(self._clock.now(), self._stuck_timeout)

    def reload_status(self) -> RunStatus:
        """Refresh the snapshot's status from the store, leaving other fields alone."""
        self._run.status = self._store.fetch_status(self._run.run_id)
        return self._run.status

    def persist_progress(self, ticks: int, duration: float) -> None:
        """Add ticks and running time to the persisted counters."""
        self._store.increment_progress(self._run.run_id, ticks, duration)
        self._run.tick_count += ticks
        self._run.time_running += duration

    def record_start(self, tick_total: int | None) -> None:
        """Persist started_at and the expected total."""
        started_at = self._clock.now()
        self._store.record_start(self._run.run_id, started_at, tick_total)
        self._run.started_at = started_at
        self._run.tick_total = tick_total

    def persist_error(self, error: BaseException) -> None:
        """Mark the run errored with the error's class, message and cleaned backtrace.

        Only the error columns are written, so whatever made the staged
        snapshot unwritable cannot stop the run from being errored.
        """
        self._run = self._store.record_error(
            self._run.run_id,
            error_class=type(error).__name__,
            error_message=str(error),
            backtrace=clean_backtrace(error),
            ended_at=self._clock.now(),
        )

    def complete(self) -> None:
        """Stage the succeeded status and ended_at."""
        self._run.status = RunStatus.SUCCEEDED
        self._run.ended_at = self._clock.now()

    def shutdown(self, cursor: Cursor | None) -> RunStatus:
        """Stage the status a job leaves the run in, and its cursor.

        Cancelling becomes cancelled, pausing becomes paused, succeeded is
        kept and anything else becomes interrupted. The decision reads the
        persisted status, since an operator may have asked to stop after the
        last element was checked.

        Returns:
            The staged status
        """
        if self._run.status is not RunStatus.SUCCEEDED:
            self.reload_status()
            if self._run.status is RunStatus.CANCELLING:
                self._run.status = RunStatus.CANCELLED
                self._run.ended_at = self._clock.now()
            elif self._run.status is RunStatus.PAUSING:
                self._run.status = RunStatus.PAUSED
            else:
                self._run.status = RunStatus.INTERRUPTED

        if cursor is not None:
            self._run.cursor = cursor
        return self._run.status

    def save(self) -> Run:
        """Write the snapshot through the store's transition validation."""
        self._run = self._store.save(self._run)
        return self._run

    def save_shutdown(self) -> tuple[Run, RunStatus | None]:
        """Save the status staged by shutdown(), settling it again if an operator won the race.

        A pause or cancel can land after shutdown() read the persisted status
        and before the save. The save is then rejected against a stopping
        status; the stop request is settled (pausing to paused, cancelling
        to cancelled) and saved instead.

        Returns:
            The saved run, and the status that replaced the staged one, if any
        """
        resettled: RunStatus | None = None
        while True:
            try:
                return self.save(), resettled
            except InvalidStatusTransitionError:
                if self.reload_status() not in STOPPING_STATUSES:
                    raise
                logger.info("Stop requested during shutdown", run_id=self._run.run_id, status=self._run.status.value)
                resettled = self.shutdown(None)

    def time_to_completion(self) -> timedelta | None:
        return self._run.time_to_completion()

    def _write(self, status: RunStatus, *, ended_at: bool = False, force_status_check: bool = False) -> None:
        self._run = self._store.update_status(
            self._run.run_id,
            status,
            ended_at=self._clock.now() if ended_at else None,
            force_status_check=force_status_check,
        )
        logger.info("Run status changed", run_id=self._run.run_id, task_name=self._run.task_name, status=status.value)
