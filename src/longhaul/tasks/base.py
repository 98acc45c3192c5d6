# src/longhaul/tasks/base.py
"""Base classes for maintenance tasks.

Task authors subclass Task (or CsvTask) and implement collection() and
process(). Everything else is optional:

    class BackfillTitlesTask(Task):
        name = "Maintenance::BackfillTitlesTask"

        class Arguments(TaskArguments):
            prefix: str = "Untitled"

        def collection(self) -> RecordSet:
            return RecordSet(engine, select(posts).where(posts.c.title.is_(None)), key=posts.c.id)

        def process(self, post: Row) -> None:
            ...

    BackfillTitlesTask.throttle_on(lambda: replica_lag() > 5, backoff=10)

Retries are owned by the engine. A task that declares its own retry
policy is rejected when the class is defined.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Final

from pydantic import BaseModel, ConfigDict, ValidationError

from longhaul.contracts import InvalidArgumentsError, RetryNotSupportedError
from longhaul.engine.enumerators import CsvCollection
from longhaul.engine.throttle import DEFAULT_BACKOFF_SECONDS, ThrottleCondition


class _NoCount:
    """Sentinel type for "this task cannot count its items"."""

    _instance: ClassVar[_NoCount | None] = None

    def __new__(cls) -> _NoCount:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_COUNT"


NO_COUNT: Final = _NoCount()

# Attributes that would compete with the engine's own error handling
_RETRY_DECLARATIONS = frozenset({"retry_on", "retry_policy", "retry"})


class TaskArguments(BaseModel):
    """Base for a task's argument schema. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class Task:
    """A maintenance task: a collection and what to do with each item."""

    # Registry key; defaults to the class name
    name: ClassVar[str]
    Arguments: ClassVar[type[TaskArguments]] = TaskArguments
    throttle_conditions: ClassVar[tuple[ThrottleCondition, ...]] = ()
    has_csv_content: ClassVar[bool] = False

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        declared = _RETRY_DECLARATIONS & set(vars(cls))
        if declared:
            raise RetryNotSupportedError(
                f"{cls.__name__} declares {', '.join(sorted(declared))}: retrying is not supported, the engine handles all errors."
            )
        if "name" not in vars(cls):
            cls.name = cls.__name__

    def __init__(self, arguments: Mapping[str, Any] | None = None) -> None:
        """Bind and validate arguments against the task's Arguments schema.

        Raises:
            InvalidArgumentsError: On unknown keys or failed validation
        """
        try:
            self.arguments = self.Arguments(**dict(arguments or {}))
        except ValidationError as e:
            raise InvalidArgumentsError(f"Arguments for {self.name} are invalid: {_format_validation_error(e)}") from e

    @classmethod
    def retry_on(cls, *args: Any, **kwargs: Any) -> None:
        """Retrying is not supported: the engine owns error handling."""
        raise RetryNotSupportedError("retry_on is not supported")

    @classmethod
    def throttle_on(cls, check: Callable[[], bool], backoff: float = DEFAULT_BACKOFF_SECONDS) -> None:
        """Add a throttle condition to this task class.

        Conditions are checked in the order they were added. Subclasses
        inherit their parent's conditions without sharing the tuple.
        """
        cls.throttle_conditions = (*cls.throttle_conditions, ThrottleCondition(check=check, backoff=backoff))

    def collection(self) -> Any:
        """Return the collection to iterate (RecordSet, BatchedRecordSet, list, tuple or CsvCollection)."""
        raise NotImplementedError(f"{type(self).__name__} must implement collection()")

    def process(self, item: Any) -> None:
        """Process one element of the collection."""
        raise NotImplementedError(f"{type(self).__name__} must implement process()")

    def count(self) -> int | _NoCount:
        """Total number of elements, or NO_COUNT to fall back to the collection's size."""
        return NO_COUNT

    # Lifecycle callbacks, no-ops unless overridden

    def on_start(self) -> None:
        pass

    def on_complete(self) -> None:
        pass

    def on_pause(self) -> None:
        pass

    def on_cancel(self) -> None:
        pass

    def on_interrupt(self) -> None:
        pass

    def on_error(self) -> None:
        pass


class CsvTask(Task):
    """A task iterating over the rows of a CSV file attached to the run.

    The content is attached by the worker before iteration starts, since
    downloading it can be slow.
    """

    has_csv_content: ClassVar[bool] = True

    def __init__(self, arguments: Mapping[str, Any] | None = None) -> None:
        super().__init__(arguments)
        self.csv_content: str | None = None

    def collection(self) -> CsvCollection:
        if self.csv_content is None:
            raise RuntimeError(f"CSV content has not been attached to {self.name}")
        return CsvCollection(self.csv_content)

    def count(self) -> int | _NoCount:
        return self.collection().count()


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(p) for p in detail["loc"]) or "arguments"
        parts.append(f"{location} {detail['msg']}")
    return "; ".join(parts)
