# tests/unit/core/store/test_run_store.py
"""Tests for RunStore: creation, conditional updates, counters and validated saves."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update

from longhaul.contracts import InvalidStatusTransitionError, RunNotFoundError, RunStatus
from longhaul.core.store import RunStore
from longhaul.core.store.schema import runs_table


def _force_status(store: RunStore, run_id: str, status: RunStatus, **values: object) -> None:
    """Write a status straight to the table, bypassing validation."""
    with store.db.connection() as conn:
        conn.execute(update(runs_table).where(runs_table.c.run_id == run_id).values(status=status.value, **values))


class TestCreateAndGet:
    def test_create_returns_enqueued_run(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task", {"since": "2024-01-01", "limit": 5})

        assert run.status is RunStatus.ENQUEUED
        assert run.task_name == "Maintenance::Task"
        assert run.arguments == {"since": "2024-01-01", "limit": 5}
        assert run.tick_count == 0
        assert run.tick_total is None
        assert run.time_running == 0.0
        assert run.cursor is None
        assert run.created_at is not None
        assert run.created_at.tzinfo is not None

    def test_arguments_keep_their_order(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task", {"zeta": 1, "alpha": 2, "mid": 3})

        assert list(store.get(run.run_id).arguments) == ["zeta", "alpha", "mid"]

    def test_get_unknown_run_raises(self, store: RunStore) -> None:
        with pytest.raises(RunNotFoundError, match="missing"):
            store.get("missing")

    def test_fetch_status_reads_only_the_status(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, RunStatus.PAUSING)

        assert store.fetch_status(run.run_id) is RunStatus.PAUSING


class TestMarkRunning:
    def test_enqueued_run_becomes_running(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")

        assert store.mark_running(run.run_id) is True
        assert store.fetch_status(run.run_id) is RunStatus.RUNNING

    def test_interrupted_run_becomes_running(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, RunStatus.INTERRUPTED)

        assert store.mark_running(run.run_id) is True

    @pytest.mark.parametrize(
        "status",
        [
            RunStatus.PAUSING,
            RunStatus.CANCELLING,
            RunStatus.PAUSED,
            RunStatus.SUCCEEDED,
            RunStatus.CANCELLED,
            RunStatus.ERRORED,
        ],
    )
    def test_stopping_or_stopped_run_is_left_alone(self, store: RunStore, status: RunStatus) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, status)

        assert store.mark_running(run.run_id) is False
        assert store.fetch_status(run.run_id) is status


class TestIncrementProgress:
    def test_increments_accumulate_in_sql(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")

        store.increment_progress(run.run_id, 3, 1.5)
        store.increment_progress(run.run_id, 2, 0.5)

        reloaded = store.get(run.run_id)
        assert reloaded.tick_count == 5
        assert reloaded.time_running == pytest.approx(2.0)

    def test_save_never_overwrites_counters(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        store.mark_running(run.run_id)
        stale = store.get(run.run_id)

        store.increment_progress(run.run_id, 7, 3.0)
        stale.cursor = 6
        saved = store.save(stale)

        assert saved.tick_count == 7
        assert saved.time_running == pytest.approx(3.0)
        assert saved.cursor == 6


class TestRecordStart:
    def test_writes_start_and_total_without_status(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, RunStatus.PAUSING)
        started_at = datetime(2024, 1, 1, tzinfo=UTC)

        store.record_start(run.run_id, started_at, 42)

        reloaded = store.get(run.run_id)
        assert reloaded.started_at == started_at
        assert reloaded.tick_total == 42
        assert reloaded.status is RunStatus.PAUSING


class TestSave:
    def test_valid_transition_is_written(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        run.status = RunStatus.PAUSING

        saved = store.save(run)

        assert saved.status is RunStatus.PAUSING

    def test_transition_checked_against_persisted_status(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        store.mark_running(run.run_id)
        run.status = RunStatus.RUNNING  # Stale copy believes it is running
        _force_status(store, run.run_id, RunStatus.PAUSED)
        run.status = RunStatus.SUCCEEDED

        with pytest.raises(InvalidStatusTransitionError, match="paused to succeeded"):
            store.save(run)
        assert store.fetch_status(run.run_id) is RunStatus.PAUSED

    def test_same_status_is_not_validated_by_default(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        run.cursor = 3

        assert store.save(run).cursor == 3

    def test_force_status_check_rejects_enqueued_to_enqueued(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")

        with pytest.raises(InvalidStatusTransitionError):
            store.save(run, force_status_check=True)

    def test_completed_run_is_immutable(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, RunStatus.SUCCEEDED)
        run = store.get(run.run_id)
        run.cursor = 10

        with pytest.raises(InvalidStatusTransitionError):
            store.save(run)
        assert store.get(run.run_id).cursor is None

    def test_backtrace_and_errors_round_trip(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        run.status = RunStatus.ERRORED
        run.error_class = "ValueError"
        run.error_message = "boom"
        run.backtrace = ["app/tasks.py:10 in process"]

        saved = store.save(run)

        assert saved.error_class == "ValueError"
        assert saved.error_message == "boom"
        assert saved.backtrace == ["app/tasks.py:10 in process"]

    def test_save_unknown_run_raises(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        run.run_id = "missing"

        with pytest.raises(RunNotFoundError):
            store.save(run)


class TestUpdateStatus:
    def test_writes_only_status_and_ended_at(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        store.mark_running(run.run_id)
        started_at = datetime(2024, 1, 1, tzinfo=UTC)
        store.record_start(run.run_id, started_at, 42)
        _force_status(store, run.run_id, RunStatus.PAUSED, cursor_json="7")
        ended_at = datetime(2024, 1, 2, tzinfo=UTC)

        updated = store.update_status(run.run_id, RunStatus.CANCELLED, ended_at=ended_at)

        assert updated.status is RunStatus.CANCELLED
        assert updated.ended_at == ended_at
        assert updated.started_at == started_at
        assert updated.tick_total == 42
        assert updated.cursor == 7

    def test_transition_is_validated(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, RunStatus.SUCCEEDED)

        with pytest.raises(InvalidStatusTransitionError, match="succeeded to pausing"):
            store.update_status(run.run_id, RunStatus.PAUSING)

    def test_force_status_check_rejects_same_status(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")

        with pytest.raises(InvalidStatusTransitionError):
            store.update_status(run.run_id, RunStatus.ENQUEUED, force_status_check=True)

    def test_unknown_run_raises(self, store: RunStore) -> None:
        with pytest.raises(RunNotFoundError):
            store.update_status("missing", RunStatus.PAUSING)


class TestRecordError:
    def test_marks_errored_and_keeps_cursor(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        store.mark_running(run.run_id)
        _force_status(store, run.run_id, RunStatus.RUNNING, cursor_json="3")
        ended_at = datetime(2024, 1, 2, tzinfo=UTC)

        errored = store.record_error(
            run.run_id,
            error_class="ValueError",
            error_message="boom",
            backtrace=["app/tasks.py:10 in process"],
            ended_at=ended_at,
        )

        assert errored.status is RunStatus.ERRORED
        assert errored.error_class == "ValueError"
        assert errored.error_message == "boom"
        assert errored.backtrace == ["app/tasks.py:10 in process"]
        assert errored.ended_at == ended_at
        assert errored.started_at == ended_at
        assert errored.cursor == 3

    def test_existing_started_at_is_kept(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        store.mark_running(run.run_id)
        started_at = datetime(2024, 1, 1, tzinfo=UTC)
        store.record_start(run.run_id, started_at, None)

        errored = store.record_error(
            run.run_id,
            error_class="ValueError",
            error_message="boom",
            backtrace=[],
            ended_at=datetime(2024, 1, 2, tzinfo=UTC),
        )

        assert errored.started_at == started_at

    def test_completed_run_cannot_error(self, store: RunStore) -> None:
        run = store.create("Maintenance::Task")
        _force_status(store, run.run_id, RunStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransitionError):
            store.record_error(run.run_id, error_class="ValueError", error_message="late", backtrace=[], ended_at=datetime.now(UTC))
        assert store.get(run.run_id).error_class is None


class TestQueries:
    def test_list_runs_filters_by_status_and_task(self, store: RunStore) -> None:
        first = store.create("Maintenance::A")
        second = store.create("Maintenance::B")
        _force_status(store, first.run_id, RunStatus.SUCCEEDED)

        assert [r.run_id for r in store.list_runs(statuses={RunStatus.ENQUEUED})] == [second.run_id]
        assert [r.run_id for r in store.list_runs(task_name="Maintenance::A")] == [first.run_id]
        assert len(store.list_runs(limit=1)) == 1

    def test_active_runs(self, store: RunStore) -> None:
        active = store.create("Maintenance::A")
        done = store.create("Maintenance::A")
        _force_status(store, done.run_id, RunStatus.CANCELLED)

        assert [r.run_id for r in store.active_runs("Maintenance::A")] == [active.run_id]

    def test_stuck_runs_are_old_cancelling_runs(self, store: RunStore) -> None:
        now = datetime.now(UTC)
        stuck = store.create("Maintenance::A")
        fresh = store.create("Maintenance::B")
        old_running = store.create("Maintenance::C")
        _force_status(store, stuck.run_id, RunStatus.CANCELLING, updated_at=now - timedelta(minutes=10))
        _force_status(store, fresh.run_id, RunStatus.CANCELLING, updated_at=now)
        _force_status(store, old_running.run_id, RunStatus.RUNNING, updated_at=now - timedelta(minutes=10))

        found = store.stuck_runs(now, timedelta(minutes=5))

        assert [r.run_id for r in found] == [stuck.run_id]
