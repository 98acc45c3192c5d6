# src/longhaul/engine/host.py
"""Iteration host: drives a coordinator through one job.

The host owns the loop and the checkpoints; the coordinator owns what
happens to the run. After every successfully processed element the host
advances its cursor and checks whether the job should exit early (the
maximum job runtime elapsed, or a shutdown signal arrived). An early exit
interrupts the run and asks the coordinator to re-enqueue a continuation
carrying the cursor, so at least one element is processed per job.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Any

import structlog

from longhaul.contracts import AbortIteration, RunStatus
from longhaul.engine.coordinator import TaskCoordinator, WorkerContext
from longhaul.engine.dispatch import Job

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IterationOutcome:
    """What one job did to its run."""

    run_id: str
    status: RunStatus | None
    processed: int
    interrupted: bool = False
    error: BaseException | None = None

    @property
    def errored(self) -> bool:
        return self.error is not None


class IterationHost:
    """Performs jobs with cooperative checkpoints and no built-in retry."""

    def __init__(
        self,
        context: WorkerContext,
        *,
        max_job_runtime: float | None = None,
        shutdown_event: threading.Event | None = None,
    ) -> None:
        """Initialize the host.

        Args:
            context: Collaborators handed to each job's coordinator
            max_job_runtime: Seconds after which a job is interrupted and
                re-enqueued; None lets a job run until its run finishes
            shutdown_event: Event checked at each checkpoint. When omitted,
                perform() installs SIGINT/SIGTERM handlers that set one.
        """
        self._context = context
        self._max_job_runtime = max_job_runtime
        self._shutdown_event = shutdown_event

    @contextmanager
    def _shutdown_handler_context(self) -> Iterator[threading.Event]:
        """Install SIGINT/SIGTERM handlers that set a shutdown event.

        On first signal: sets the event, restores default SIGINT handler
        (so second Ctrl-C force-kills via KeyboardInterrupt).

        Off the main thread, signal registration is skipped (signal.signal()
        raises ValueError there) and the event is only set programmatically.

        Restores original handlers in finally block (main thread only).
        """
        shutdown_event = threading.Event()

        if threading.current_thread() is not threading.main_thread():
            yield shutdown_event
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, frame: Any) -> None:
            logger.warning("Shutdown requested, interrupting at the next checkpoint", signal=signum)
            shutdown_event.set()
            signal.signal(signal.SIGINT, signal.default_int_handler)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        try:
            yield shutdown_event
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

    def perform(self, job: Job) -> IterationOutcome:
        """Run one job. Errors are handed to the coordinator, never raised."""
        coordinator = TaskCoordinator(self._context)
        shutdown_ctx = nullcontext(self._shutdown_event) if self._shutdown_event is not None else self._shutdown_handler_context()

        with structlog.contextvars.bound_contextvars(run_id=job.run_id), shutdown_ctx as shutdown_event:
            progress = _JobProgress()
            try:
                self._iterate(coordinator, job, shutdown_event, progress)
            except Exception as error:
                coordinator.on_error(error)
                return IterationOutcome(
                    run_id=job.run_id,
                    status=_status_of(coordinator),
                    processed=progress.processed,
                    error=error,
                )

        return IterationOutcome(
            run_id=job.run_id,
            status=_status_of(coordinator),
            processed=progress.processed,
            interrupted=progress.interrupted,
        )

    def _iterate(
        self,
        coordinator: TaskCoordinator,
        job: Job,
        shutdown_event: threading.Event,
        progress: _JobProgress,
    ) -> None:
        if not coordinator.before_start(job.run_id):
            return
        enumerator = coordinator.build_enumerator(job.cursor)
        if job.times_interrupted == 0:
            coordinator.on_start()

        clock = self._context.clock
        started = clock.monotonic()
        completed = False
        try:
            for element, element_cursor in enumerator:
                coordinator.each_iteration(element)
                progress.cursor = element_cursor
                progress.processed += 1
                if self._should_exit(clock.monotonic() - started, shutdown_event):
                    progress.interrupted = True
                    break
            else:
                completed = True
        except AbortIteration as abort:
            logger.info("Iteration stopped by request", status=str(abort))

        if completed:
            coordinator.on_complete()
        if progress.interrupted:
            coordinator.request_reenqueue(job.continuation(progress.cursor))
        coordinator.on_shutdown(progress.cursor)
        coordinator.after_finish()

    def _should_exit(self, elapsed: float, shutdown_event: threading.Event) -> bool:
        if shutdown_event.is_set():
            return True
        return self._max_job_runtime is not None and elapsed >= self._max_job_runtime


@dataclass
class _JobProgress:
    cursor: Any = None
    processed: int = 0
    interrupted: bool = False


def _status_of(coordinator: TaskCoordinator) -> RunStatus | None:
    try:
        return coordinator.run.status
    except RuntimeError:
        return None
