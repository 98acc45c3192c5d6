# src/longhaul/tasks/discovery.py
"""Task discovery in configured modules.

A module listed in ``tasks.modules`` is imported and scanned for classes
that:
1. Inherit from Task (but are not Task or CsvTask themselves)
2. Are defined in that module (not imported into it)
3. Are not abstract
"""

import importlib
import inspect
from typing import Any

import structlog

from longhaul.tasks.base import CsvTask, Task

logger = structlog.get_logger(__name__)

_BASE_CLASSES: frozenset[type] = frozenset({Task, CsvTask})


def discover_tasks_in_module(module_name: str) -> list[type[Task]]:
    """Import ``module_name`` and return the task classes it defines.

    Raises:
        ModuleNotFoundError: If the module cannot be imported
    """
    module = importlib.import_module(module_name)

    discovered: list[type[Task]] = []
    for _, obj in inspect.getmembers(module, inspect.isclass):
        if obj.__module__ != module.__name__:
            continue
        if not issubclass(obj, Task) or obj in _BASE_CLASSES:
            continue
        if inspect.isabstract(obj):
            continue
        discovered.append(obj)

    logger.debug("Discovered tasks", module=module_name, count=len(discovered))
    return discovered


def get_task_description(task_cls: type[Task]) -> str:
    """First non-empty docstring line, or a name-based default."""
    if task_cls.__doc__:
        for line in task_cls.__doc__.strip().split("\n"):
            cleaned = line.strip()
            if cleaned:
                return cleaned
    return f"{task_cls.name} task"


def create_dynamic_hookimpl(task_classes: list[type[Task]]) -> object:
    """Wrap ``task_classes`` in an object implementing longhaul_get_tasks."""
    from longhaul.tasks.hookspecs import hookimpl

    class DynamicHookImpl:
        """Dynamically generated hook implementer."""

    def longhaul_get_tasks(self: Any) -> list[type[Task]]:
        return task_classes

    DynamicHookImpl.longhaul_get_tasks = hookimpl(longhaul_get_tasks)  # type: ignore[attr-defined]
    return DynamicHookImpl()
