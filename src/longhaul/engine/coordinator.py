# src/longhaul/engine/coordinator.py
"""Execution coordinator: the lifecycle hooks a host drives for one job.

The host calls, in order:

    before_start(run_id)        # False for a paused or completed run: stop here
    build_enumerator(cursor)
    on_start()                  # first invocation of a run only
    each_iteration(element)     # per element; may raise AbortIteration
    on_complete()               # only when the enumerator is exhausted
    on_shutdown(cursor)
    after_finish()

and on_error(error) instead of the remaining hooks when any of them raises.
A coordinator holds the state of a single job and is not reused.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Protocol

import structlog

from longhaul.contracts import STUCK_TASK_TIMEOUT, AbortIteration, ContentAttachmentError, Run, RunStatus
from longhaul.core.store import ContentStore, RunStore
from longhaul.engine.clock import DEFAULT_CLOCK, Clock
from longhaul.engine.dispatch import Dispatcher, Job
from longhaul.engine.enumerators import CollectionSource, Cursor, Enumerator, adapt_collection
from longhaul.engine.state_machine import RunStateMachine
from longhaul.engine.throttle import throttle_enumerator
from longhaul.engine.ticker import Ticker
from longhaul.tasks.base import NO_COUNT, Task
from longhaul.tasks.registry import TaskRegistry

logger = structlog.get_logger(__name__)


class ErrorSink(Protocol):
    """Receives every error that ends a job."""

    def __call__(self, error: BaseException, context: dict[str, Any], element: Any | None) -> None: ...


def log_error(error: BaseException, context: dict[str, Any], element: Any | None) -> None:
    """Default error sink: log the error with its context."""
    logger.error(
        "Task errored",
        error_class=type(error).__name__,
        error_message=str(error),
        errored_element=repr(element) if element is not None else None,
        **context,
    )


@dataclass(frozen=True)
class WorkerContext:
    """Collaborators shared by every job a worker performs."""

    store: RunStore
    registry: TaskRegistry
    content_store: ContentStore | None = None
    dispatcher: Dispatcher | None = None
    error_sink: ErrorSink = log_error
    clock: Clock = DEFAULT_CLOCK
    ticker_delay: float = 1.0
    stuck_timeout: timedelta = field(default=STUCK_TASK_TIMEOUT)


_SHUTDOWN_CALLBACKS = {
    RunStatus.CANCELLED: "on_cancel",
    RunStatus.PAUSED: "on_pause",
    RunStatus.INTERRUPTED: "on_interrupt",
}


class TaskCoordinator:
    """Runs one job of a run through its lifecycle."""

    def __init__(self, context: WorkerContext) -> None:
        self._context = context
        self._machine: RunStateMachine | None = None
        self._task: Task | None = None
        self._ticker: Ticker | None = None
        self._source: CollectionSource | None = None
        self._errored_element: Any | None = None
        self._continuation: Job | None = None

    @property
    def run(self) -> Run:
        return self._require_machine().run

    @property
    def task(self) -> Task:
        if self._task is None:
            raise RuntimeError("before_start() has not been called")
        return self._task

    @property
    def errored_element(self) -> Any | None:
        return self._errored_element

    def _require_machine(self) -> RunStateMachine:
        if self._machine is None:
            raise RuntimeError("before_start() has not been called")
        return self._machine

    def before_start(self, run_id: str) -> bool:
        """Load the run, mark it running and rebuild its task.

        Returns:
            False when the run was already paused or completed before this
            job started, in which case no other hook may be called
        """
        ctx = self._context
        self._machine = RunStateMachine.load(ctx.store, run_id, clock=ctx.clock, stuck_timeout=ctx.stuck_timeout)
        run = self._machine.run
        self._machine.running()
        if run.is_stopped:
            logger.warning("Skipping job for stopped run", run_id=run_id, task_name=run.task_name, status=run.status.value)
            return False

        self._task = ctx.registry.build(run.task_name, run.arguments)
        if self._task.has_csv_content:
            if ctx.content_store is None:
                raise ContentAttachmentError(f"{run.task_name} needs CSV content but the worker has no content store")
            self._task.csv_content = ctx.content_store.download(run_id)  # type: ignore[attr-defined]

        self._ticker = Ticker(ctx.ticker_delay, self._machine.persist_progress, clock=ctx.clock)
        logger.info("Job started", run_id=run_id, task_name=run.task_name, status=self._machine.status.value)
        return True

    def build_enumerator(self, cursor: Cursor | None) -> Enumerator:
        """Adapt the task's collection, resuming after the run's persisted cursor.

        The persisted cursor is never older than the one a job carries, so
        ``cursor`` is only used for a run that has none stored.

        Raises:
            InvalidCollectionError: If collection() returns an unsupported shape
        """
        task = self.task
        if self.run.cursor is not None:
            cursor = self.run.cursor
        self._source = adapt_collection(task.collection(), owner=task.name)
        return throttle_enumerator(self._source.enumerate(cursor), type(task).throttle_conditions, clock=self._context.clock)

    def on_start(self) -> None:
        """Record the start time and expected total, then run the task's on_start.

        Skipped for runs resumed after a pause or an interruption.
        """
        machine = self._require_machine()
        if machine.run.is_started:
            return

        count = self.task.count()
        total = self._source.size() if count is NO_COUNT and self._source is not None else count
        machine.record_start(total if isinstance(total, int) else None)
        self.task.on_start()

    def each_iteration(self, element: Any) -> None:
        """Process one element.

        Raises:
            AbortIteration: If a pause or cancel was observed after the previous element
        """
        machine = self._require_machine()
        if machine.run.is_stopping:
            raise AbortIteration(machine.status.value)

        try:
            self.task.process(element)
        except Exception:
            self._errored_element = element
            raise

        assert self._ticker is not None
        self._ticker.tick()
        machine.reload_status()

    def on_complete(self) -> None:
        self._require_machine().complete()
        self.task.on_complete()

    def on_shutdown(self, cursor: Cursor | None) -> None:
        """Settle the run's final status for this job and keep its cursor."""
        machine = self._require_machine()
        self._run_shutdown_callback(machine.shutdown(cursor))

        assert self._ticker is not None
        self._ticker.persist()

    def _run_shutdown_callback(self, status: RunStatus) -> None:
        callback = _SHUTDOWN_CALLBACKS.get(status)
        if callback is not None:
            getattr(self.task, callback)()

    def request_reenqueue(self, job: Job) -> None:
        """Ask after_finish() to enqueue ``job`` if the run ends up interrupted."""
        self._continuation = job

    def after_finish(self) -> None:
        """Write the run, then enqueue the continuation of an interrupted job."""
        machine = self._require_machine()
        run, resettled = machine.save_shutdown()
        if resettled is not None:
            self._run_shutdown_callback(resettled)
        logger.info("Job finished", run_id=run.run_id, task_name=run.task_name, status=run.status.value, tick_count=run.tick_count)

        if self._continuation is None or run.status is not RunStatus.INTERRUPTED:
            return
        dispatcher = self._context.dispatcher
        if dispatcher is None:
            logger.warning("Interrupted run left for a manual resume", run_id=run.run_id, task_name=run.task_name)
            return
        dispatcher.enqueue(self._continuation)
        logger.info(
            "Run re-enqueued",
            run_id=run.run_id,
            task_name=run.task_name,
            times_interrupted=self._continuation.times_interrupted,
        )

    def on_error(self, error: BaseException) -> None:
        """Persist ``error`` on the run and report it.

        Never raises. A failure to persist is logged and the error sink is
        still called, as are errors raised by the task's own on_error
        callback.
        """
        context = self._persist_error(error)
        self._run_error_callback()
        self._report(error, context)

    def _persist_error(self, error: BaseException) -> dict[str, Any]:
        if self._machine is None:
            return {}
        run_id = self._machine.run.run_id
        if self._ticker is not None:
            try:
                self._ticker.persist()
            except Exception as persist_error:
                logger.error(
                    "Could not persist progress of errored run",
                    run_id=run_id,
                    error_class=type(persist_error).__name__,
                    error_message=str(persist_error),
                )
        try:
            self._machine.persist_error(error)
        except Exception as persist_error:
            logger.error(
                "Could not mark run errored",
                run_id=run_id,
                error_class=type(persist_error).__name__,
                error_message=str(persist_error),
            )
        run = self._machine.run
        return {
            "task_name": run.task_name,
            "started_at": run.started_at,
            "ended_at": run.ended_at,
        }

    def _run_error_callback(self) -> None:
        if self._task is None:
            return
        try:
            self._task.on_error()
        except Exception as callback_error:
            logger.warning(
                "Task on_error callback raised",
                task_name=self._task.name,
                error_class=type(callback_error).__name__,
                error_message=str(callback_error),
            )

    def _report(self, error: BaseException, context: dict[str, Any]) -> None:
        try:
            self._context.error_sink(error, context, self._errored_element)
        except Exception as sink_error:
            logger.error(
                "Error sink raised",
                error_class=type(sink_error).__name__,
                error_message=str(sink_error),
                reported_error=type(error).__name__,
            )
