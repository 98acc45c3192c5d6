# src/longhaul/core/store/run_store.py
"""Persistence for run records.

Every cross-actor mutation goes through one of four paths:

- Conditional updates (mark_running) that decide in a single statement.
- Counter increments (increment_progress) computed in SQL, never
  read-modify-write.
- Targeted status writes (update_status, record_error) that touch only
  the columns they own.
- Full-record saves (save), used by the worker that owns the run.

Status writes validate the transition against the persisted status inside
the same transaction. Full-record saves never write tick_count or
time_running: those columns belong to the increments, and a worker's
in-memory copy is always stale.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Connection, func, select

from longhaul.contracts import (
    ACTIVE_STATUSES,
    COMPLETED_STATUSES,
    InvalidStatusTransitionError,
    Run,
    RunNotFoundError,
    RunStatus,
)
from longhaul.core.store._database_ops import DatabaseOps
from longhaul.core.store._helpers import dump_json, generate_id, now
from longhaul.core.store.database import RunDB
from longhaul.core.store.repository import RunRepository
from longhaul.core.store.schema import runs_table
from longhaul.core.store.status_validator import validate_transition

# Statuses a worker may move to running
_STARTABLE_STATUSES = (RunStatus.ENQUEUED, RunStatus.RUNNING, RunStatus.INTERRUPTED)


class RunStore:
    """Reads and writes run records.

    Example:
        store = RunStore(RunDB.in_memory())
        run = store.create("Maintenance::BackfillTask", {"since": "2024-01-01"})
        store.mark_running(run.run_id)
    """

    def __init__(self, db: RunDB) -> None:
        self._db = db
        self._ops = DatabaseOps(db)
        self._repo = RunRepository()

    @property
    def db(self) -> RunDB:
        return self._db

    def create(self, task_name: str, arguments: Mapping[str, Any] | None = None) -> Run:
        """Insert a new enqueued run.

        Args:
            task_name: Registered name of the task to perform
            arguments: Ordered task arguments (JSON-serializable)

        Returns:
            The created Run
        """
        run_id = generate_id()
        timestamp = now()
        self._ops.execute_insert(
            runs_table.insert().values(
                run_id=run_id,
                task_name=task_name,
                status=RunStatus.ENQUEUED.value,
                arguments_json=dump_json(dict(arguments or {})),
                tick_count=0,
                time_running=0.0,
                created_at=timestamp,
                updated_at=timestamp,
            )
        )
        return self.get(run_id)

    def get(self, run_id: str) -> Run:
        """Load a run.

        Raises:
            RunNotFoundError: If no run has this id
        """
        row = self._ops.execute_fetchone(select(runs_table).where(runs_table.c.run_id == run_id))
        if row is None:
            raise RunNotFoundError(run_id)
        return self._repo.load(row)

    def fetch_status(self, run_id: str) -> RunStatus:
        """Read only the status column, straight from the database."""
        row = self._ops.execute_fetchone(select(runs_table.c.status).where(runs_table.c.run_id == run_id))
        if row is None:
            raise RunNotFoundError(run_id)
        return RunStatus(row.status)

    def mark_running(self, run_id: str) -> bool:
        """Set status to running if the run is enqueued, running or interrupted.

        Decided by a single conditional UPDATE so an operator's pause or
        cancel racing with the worker start can never be overwritten, and a
        stale job can never revive a paused or completed run.

        Returns:
            True if the run is now running, False if it was left alone
        """
        updated = self._ops.execute_update(
            runs_table.update()
            .where(runs_table.c.run_id == run_id)
            .where(runs_table.c.status.in_([s.value for s in _STARTABLE_STATUSES]))
            .values(status=RunStatus.RUNNING.value, updated_at=now())
        )
        return updated > 0

    def increment_progress(self, run_id: str, ticks: int, duration: float) -> None:
        """Add to tick_count and time_running in SQL and touch updated_at."""
        self._ops.execute_update(
            runs_table.update()
            .where(runs_table.c.run_id == run_id)
            .values(
                tick_count=runs_table.c.tick_count + ticks,
                time_running=runs_table.c.time_running + duration,
                updated_at=now(),
            )
        )

    def record_start(self, run_id: str, started_at: datetime, tick_total: int | None) -> None:
        """Write started_at and tick_total without touching the status column."""
        self._ops.execute_update(
            runs_table.update()
            .where(runs_table.c.run_id == run_id)
            .values(started_at=started_at, tick_total=tick_total, updated_at=now())
        )

    def save(self, run: Run, *, force_status_check: bool = False) -> Run:
        """Write the run's mutable fields, validating the status transition.

        The persisted status is read inside the writing transaction and the
        transition to ``run.status`` is checked against it. Writing the same
        status is allowed unless ``force_status_check`` is set.

        Args:
            run: In-memory run holding the desired state
            force_status_check: Validate even when the status is unchanged

        Returns:
            The run re-read from the store

        Raises:
            RunNotFoundError: If the run no longer exists
            InvalidStatusTransitionError: If the transition is illegal, or the
                persisted run is already completed
        """
        timestamp = now()
        with self._db.connection() as conn:
            _check_transition(conn, run.run_id, run.status, force_status_check=force_status_check)
            conn.execute(
                runs_table.update()
                .where(runs_table.c.run_id == run.run_id)
                .values(
                    status=run.status.value,
                    cursor_json=dump_json(run.cursor),
                    tick_total=run.tick_total,
                    started_at=run.started_at,
                    ended_at=run.ended_at,
                    error_class=run.error_class,
                    error_message=run.error_message,
                    backtrace_json=dump_json(run.backtrace),
                    updated_at=timestamp,
                )
            )
        return self.get(run.run_id)

    def update_status(
        self,
        run_id: str,
        status: RunStatus,
        *,
        ended_at: datetime | None = None,
        force_status_check: bool = False,
    ) -> Run:
        """Validated write of the status (and ended_at, when given) only.

        Operator actions use this instead of save() so a snapshot loaded
        before a worker's record_start can never write back stale columns.

        Raises:
            RunNotFoundError: If the run does not exist
            InvalidStatusTransitionError: If the transition is illegal
        """
        values: dict[str, Any] = {"status": status.value, "updated_at": now()}
        if ended_at is not None:
            values["ended_at"] = ended_at
        with self._db.connection() as conn:
            _check_transition(conn, run_id, status, force_status_check=force_status_check)
            conn.execute(runs_table.update().where(runs_table.c.run_id == run_id).values(**values))
        return self.get(run_id)

    def record_error(
        self,
        run_id: str,
        *,
        error_class: str,
        error_message: str,
        backtrace: list[str],
        ended_at: datetime,
    ) -> Run:
        """Mark the run errored without touching its cursor or counters.

        started_at is backfilled with ``ended_at`` for runs that errored
        before they started.

        Raises:
            RunNotFoundError: If the run does not exist
            InvalidStatusTransitionError: If the run is already completed
        """
        with self._db.connection() as conn:
            _check_transition(conn, run_id, RunStatus.ERRORED)
            conn.execute(
                runs_table.update()
                .where(runs_table.c.run_id == run_id)
                .values(
                    status=RunStatus.ERRORED.value,
                    error_class=error_class,
                    error_message=error_message,
                    backtrace_json=dump_json(backtrace),
                    started_at=func.coalesce(runs_table.c.started_at, ended_at),
                    ended_at=ended_at,
                    updated_at=now(),
                )
            )
        return self.get(run_id)

    def list_runs(
        self,
        *,
        statuses: Iterable[RunStatus] | None = None,
        task_name: str | None = None,
        limit: int | None = None,
    ) -> list[Run]:
        """List runs, newest first."""
        query = select(runs_table).order_by(runs_table.c.created_at.desc())
        if statuses is not None:
            query = query.where(runs_table.c.status.in_([s.value for s in statuses]))
        if task_name is not None:
            query = query.where(runs_table.c.task_name == task_name)
        if limit is not None:
            query = query.limit(limit)
        return [self._repo.load(row) for row in self._ops.execute_fetchall(query)]

    def active_runs(self, task_name: str | None = None) -> list[Run]:
        return self.list_runs(statuses=ACTIVE_STATUSES, task_name=task_name)

    def stuck_runs(self, current_time: datetime, timeout: timedelta) -> list[Run]:
        """Cancelling runs whose updated_at is older than ``timeout``."""
        query = (
            select(runs_table)
            .where(runs_table.c.status == RunStatus.CANCELLING.value)
            .where(runs_table.c.updated_at <= current_time - timeout)
            .order_by(runs_table.c.updated_at)
        )
        return [self._repo.load(row) for row in self._ops.execute_fetchall(query)]


def _check_transition(conn: Connection, run_id: str, status: RunStatus, *, force_status_check: bool = False) -> RunStatus:
    """Validate a write of ``status`` against the locked persisted status.

    Writing the same status is allowed unless ``force_status_check`` is set
    or the run is completed.
    """
    row = conn.execute(select(runs_table.c.status).where(runs_table.c.run_id == run_id).with_for_update()).fetchone()
    if row is None:
        raise RunNotFoundError(run_id)
    persisted = RunStatus(row.status)

    if persisted != status or force_status_check:
        validate_transition(run_id, persisted, status)
    elif status in COMPLETED_STATUSES:
        # Completed runs are immutable; only superseded by new runs
        raise InvalidStatusTransitionError(run_id, persisted.value, status.value)
    return persisted
