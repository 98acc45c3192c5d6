# src/longhaul/engine/dispatch.py
"""Jobs and the dispatchers that queue them.

A Job is one worker invocation for a run. The continuation of an
interrupted job carries its cursor forward so the next invocation resumes
where this one stopped.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from longhaul.engine.host import IterationHost, IterationOutcome

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Job:
    """One invocation of the worker for a run."""

    run_id: str
    cursor: Any = None
    times_interrupted: int = 0

    def continuation(self, cursor: Any) -> Job:
        """The job that picks up after this one was interrupted at ``cursor``."""
        return replace(self, cursor=cursor, times_interrupted=self.times_interrupted + 1)


class Dispatcher(Protocol):
    """Job-processing backend.

    enqueue() returns False when the backend refused the job. Raising is
    treated the same way by callers.
    """

    def enqueue(self, job: Job) -> bool: ...


class InlineDispatcher:
    """In-process FIFO of jobs, worked off synchronously.

    Used by the CLI and tests. Continuation jobs enqueued while working
    are picked up by the same work_off() call.
    """

    def __init__(self) -> None:
        self._queue: deque[Job] = deque()

    def enqueue(self, job: Job) -> bool:
        self._queue.append(job)
        logger.debug("Job enqueued", run_id=job.run_id, times_interrupted=job.times_interrupted)
        return True

    @property
    def pending(self) -> list[Job]:
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def work_off(self, host: IterationHost, *, limit: int | None = None) -> list[IterationOutcome]:
        """Perform queued jobs until the queue is empty or ``limit`` jobs ran.

        Returns:
            The outcome of every job performed, in order
        """
        outcomes: list[IterationOutcome] = []
        while self._queue and (limit is None or len(outcomes) < limit):
            outcomes.append(host.perform(self._queue.popleft()))
        return outcomes
