# src/longhaul/engine/runner.py
"""Operator actions on runs: start, resume, pause, cancel and reap.

Starting a run validates everything that can be checked without
iterating (task name, arguments, CSV attachment, collection shape) so
configuration errors surface to the operator instead of to a worker.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from longhaul.contracts import (
    ActiveRunExistsError,
    ContentAttachmentError,
    EnqueuingError,
    Run,
)
from longhaul.engine.coordinator import WorkerContext
from longhaul.engine.dispatch import Dispatcher, Job
from longhaul.engine.enumerators import adapt_collection
from longhaul.engine.state_machine import RunStateMachine

logger = structlog.get_logger(__name__)


class Runner:
    """Creates runs and enqueues the jobs that perform them.

    Example:
        runner = Runner(context)
        run = runner.run("Maintenance::BackfillTitlesTask", {"prefix": "Draft"})
        runner.pause(run.run_id)
    """

    def __init__(self, context: WorkerContext) -> None:
        if context.dispatcher is None:
            raise ValueError("Runner needs a dispatcher to enqueue jobs")
        self._context = context
        self._dispatcher: Dispatcher = context.dispatcher

    def run(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        csv_content: str | None = None,
        filename: str | None = None,
    ) -> Run:
        """Create a run of the named task and enqueue its first job.

        Args:
            name: Registered task name
            arguments: Task arguments, validated against its Arguments model
            csv_content: CSV document, required by CSV tasks and refused otherwise
            filename: Name stored with the CSV content

        Returns:
            The enqueued run

        Raises:
            TaskNotFoundError: If the task is not registered
            InvalidArgumentsError: If the arguments are invalid
            ContentAttachmentError: If CSV content is missing or unexpected
            InvalidCollectionError: If the task's collection has an unsupported shape
            ActiveRunExistsError: If the task already has an active run
            EnqueuingError: If the job could not be enqueued; the run is errored
        """
        ctx = self._context
        task_cls = ctx.registry.named(name)
        task = task_cls(arguments)

        if task_cls.has_csv_content:
            if csv_content is None:
                raise ContentAttachmentError(f"{name} requires a CSV file.")
            if ctx.content_store is None:
                raise ContentAttachmentError(f"{name} requires a CSV file but no content store is configured.")
            task.csv_content = csv_content  # type: ignore[attr-defined]
        elif csv_content is not None:
            raise ContentAttachmentError(f"{name} does not use a CSV file, none should be attached.")

        adapt_collection(task.collection(), owner=name)

        active = ctx.store.active_runs(name)
        if active:
            raise ActiveRunExistsError(active[0])

        run = ctx.store.create(name, task.arguments.model_dump(mode="json"))
        if csv_content is not None and ctx.content_store is not None:
            ctx.content_store.attach(run.run_id, filename or f"{run.run_id}.csv", csv_content.encode("utf-8"))

        logger.info("Run created", run_id=run.run_id, task_name=name)
        return self._enqueue(run)

    def new_run_allowed(self, name: str) -> bool:
        """Whether ``name`` has no active run."""
        return not self._context.store.active_runs(name)

    def resume(self, run_id: str) -> Run:
        """Enqueue a paused or interrupted run again.

        Raises:
            InvalidStatusTransitionError: If the run is not paused or interrupted
            EnqueuingError: If the job could not be enqueued; the run is errored
        """
        machine = self._machine(run_id)
        machine.enqueued()
        return self._enqueue(machine.run)

    def pause(self, run_id: str) -> Run:
        machine = self._machine(run_id)
        machine.pause()
        return machine.run

    def cancel(self, run_id: str) -> Run:
        machine = self._machine(run_id)
        machine.cancel()
        return machine.run

    def reap_stuck_runs(self) -> list[Run]:
        """Force-cancel every run stuck in cancelling.

        Returns:
            The runs that were cancelled
        """
        ctx = self._context
        reaped: list[Run] = []
        for run in ctx.store.stuck_runs(ctx.clock.now(), ctx.stuck_timeout):
            machine = RunStateMachine(ctx.store, run, clock=ctx.clock, stuck_timeout=ctx.stuck_timeout)
            machine.cancel()
            logger.warning("Stuck run cancelled", run_id=run.run_id, task_name=run.task_name)
            reaped.append(machine.run)
        return reaped

    def _machine(self, run_id: str) -> RunStateMachine:
        ctx = self._context
        return RunStateMachine.load(ctx.store, run_id, clock=ctx.clock, stuck_timeout=ctx.stuck_timeout)

    def _enqueue(self, run: Run) -> Run:
        try:
            if not self._dispatcher.enqueue(Job(run.run_id)):
                raise RuntimeError(f"The job to perform {run.task_name} could not be enqueued. Enqueuing has been prevented by the dispatcher.")
        except Exception as error:
            machine = RunStateMachine(self._context.store, run, clock=self._context.clock)
            machine.persist_error(error)
            raise EnqueuingError(machine.run) from error
        return run
