"""Tests for the Task and CsvTask base classes."""

from typing import Any

import pytest
from pydantic import ValidationError

from longhaul.contracts import InvalidArgumentsError, RetryNotSupportedError
from longhaul.engine.enumerators import CsvCollection
from longhaul.engine.throttle import ThrottleCondition
from longhaul.tasks import NO_COUNT, CsvTask, Task, TaskArguments


class WindowArguments(TaskArguments):
    start: int
    finish: int | None = None
    dry_run: bool = False


class WindowTask(Task):
    name = "Maintenance::WindowTask"
    Arguments = WindowArguments

    def collection(self) -> list[int]:
        return list(range(self.arguments.start, self.arguments.finish or self.arguments.start + 3))  # type: ignore[attr-defined]

    def process(self, item: int) -> None:
        pass


class TestTaskName:
    def test_defaults_to_class_name(self) -> None:
        class PurgeSessionsTask(Task):
            pass

        assert PurgeSessionsTask.name == "PurgeSessionsTask"

    def test_explicit_name_is_kept(self) -> None:
        assert WindowTask.name == "Maintenance::WindowTask"

    def test_subclass_gets_its_own_default(self) -> None:
        class ChildTask(WindowTask):
            pass

        assert ChildTask.name == "ChildTask"


class TestArguments:
    def test_arguments_are_validated_and_coerced(self) -> None:
        task = WindowTask({"start": "2", "dry_run": "true"})

        assert task.arguments == WindowArguments(start=2, dry_run=True)

    def test_missing_required_argument(self) -> None:
        with pytest.raises(InvalidArgumentsError, match="start Field required"):
            WindowTask({})

    def test_unknown_argument_rejected(self) -> None:
        with pytest.raises(InvalidArgumentsError, match="colour"):
            WindowTask({"start": 1, "colour": "red"})

    def test_arguments_are_frozen(self) -> None:
        task = WindowTask({"start": 1})

        with pytest.raises(ValidationError, match="frozen"):
            task.arguments.start = 5  # type: ignore[misc]

    def test_task_without_schema_accepts_no_arguments(self) -> None:
        class PlainTask(Task):
            pass

        PlainTask()
        PlainTask({})
        with pytest.raises(InvalidArgumentsError):
            PlainTask({"anything": 1})


class TestRetryRejection:
    @pytest.mark.parametrize("attribute", ["retry_on", "retry_policy", "retry"])
    def test_retry_declaration_rejected_at_class_definition(self, attribute: str) -> None:
        with pytest.raises(RetryNotSupportedError, match=attribute):
            type("RetryingTask", (Task,), {attribute: lambda self: None})

    def test_calling_retry_on_raises(self) -> None:
        with pytest.raises(RetryNotSupportedError):
            WindowTask.retry_on(ConnectionError, attempts=3)


class TestThrottleOn:
    def test_conditions_accumulate_in_order(self) -> None:
        class ThrottledTask(Task):
            pass

        first = lambda: False  # noqa: E731
        second = lambda: True  # noqa: E731
        ThrottledTask.throttle_on(first, backoff=5)
        ThrottledTask.throttle_on(second)

        assert ThrottledTask.throttle_conditions == (
            ThrottleCondition(check=first, backoff=5),
            ThrottleCondition(check=second, backoff=30.0),
        )

    def test_subclass_conditions_do_not_leak_to_parent(self) -> None:
        class ParentTask(Task):
            pass

        ParentTask.throttle_on(lambda: False)

        class ChildTask(ParentTask):
            pass

        ChildTask.throttle_on(lambda: True)

        assert len(ParentTask.throttle_conditions) == 1
        assert len(ChildTask.throttle_conditions) == 2
        assert Task.throttle_conditions == ()

    def test_non_positive_backoff_rejected(self) -> None:
        class ThrottledTask(Task):
            pass

        with pytest.raises(ValueError, match="backoff must be positive"):
            ThrottledTask.throttle_on(lambda: False, backoff=0)


class TestDefaults:
    def test_count_defaults_to_no_count(self) -> None:
        assert WindowTask({"start": 1}).count() is NO_COUNT

    def test_no_count_is_a_singleton(self) -> None:
        assert type(NO_COUNT)() is NO_COUNT
        assert repr(NO_COUNT) == "NO_COUNT"

    def test_unimplemented_collection_and_process(self) -> None:
        class EmptyTask(Task):
            pass

        task = EmptyTask()
        with pytest.raises(NotImplementedError, match="collection"):
            task.collection()
        with pytest.raises(NotImplementedError, match="process"):
            task.process(1)

    def test_callbacks_are_no_ops(self) -> None:
        task = WindowTask({"start": 1})

        for callback in ("on_start", "on_complete", "on_pause", "on_cancel", "on_interrupt", "on_error"):
            assert getattr(task, callback)() is None


class ImportRowsTask(CsvTask):
    def process(self, row: dict[str, Any]) -> None:
        pass


class TestCsvTask:
    def test_is_flagged_as_csv(self) -> None:
        assert ImportRowsTask.has_csv_content
        assert not WindowTask.has_csv_content

    def test_collection_reads_attached_content(self) -> None:
        task = ImportRowsTask()
        task.csv_content = "id,name\n1,a\n2,b\n"

        collection = task.collection()

        assert isinstance(collection, CsvCollection)
        assert task.count() == 2

    def test_collection_without_content_fails(self) -> None:
        with pytest.raises(RuntimeError, match="CSV content has not been attached"):
            ImportRowsTask().collection()
