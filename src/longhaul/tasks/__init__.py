"""Task definition surface: base classes, collections and the registry."""

from longhaul.engine.enumerators import BatchedRecordSet, CsvCollection, ListCollection, RecordSet
from longhaul.engine.throttle import ThrottleCondition
from longhaul.tasks.base import NO_COUNT, CsvTask, Task, TaskArguments
from longhaul.tasks.hookspecs import hookimpl
from longhaul.tasks.registry import TaskRegistry

__all__ = [
    "NO_COUNT",
    "BatchedRecordSet",
    "CsvCollection",
    "CsvTask",
    "ListCollection",
    "RecordSet",
    "Task",
    "TaskArguments",
    "TaskRegistry",
    "ThrottleCondition",
    "hookimpl",
]
