# src/longhaul/tasks/registry.py
"""Task registry: task name -> task class.

Uses pluggy for hook-based registration. Tasks come from three places,
all populated at process start:

- task packages registered directly or via the ``longhaul`` entry point group
- modules listed in the ``tasks.modules`` setting
- classes passed to register_tasks() (tests, embedding applications)
"""

from collections.abc import Iterable, Mapping
from typing import Any

import pluggy
import structlog

from longhaul.contracts import TaskNotFoundError
from longhaul.tasks.base import Task
from longhaul.tasks.discovery import create_dynamic_hookimpl, discover_tasks_in_module
from longhaul.tasks.hookspecs import PROJECT_NAME, LonghaulTaskSpec

logger = structlog.get_logger(__name__)


class TaskRegistry:
    """Discovers, registers and builds tasks.

    Usage:
        registry = TaskRegistry()
        registry.register_tasks(BackfillTitlesTask)

        task = registry.build("Maintenance::BackfillTitlesTask", {"prefix": "Draft"})
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(LonghaulTaskSpec)
        self._tasks: dict[str, type[Task]] = {}

    def register(self, plugin: Any) -> None:
        """Register an object implementing longhaul_get_tasks.

        Raises:
            ValueError: If two different classes claim the same task name
        """
        self._pm.register(plugin)
        self._refresh_cache()

    def register_tasks(self, *task_classes: type[Task]) -> None:
        self.register(create_dynamic_hookimpl(list(task_classes)))

    def load_modules(self, module_names: Iterable[str]) -> None:
        """Import each module and register the task classes it defines."""
        for module_name in module_names:
            self.register_tasks(*discover_tasks_in_module(module_name))

    def load_entrypoints(self) -> int:
        """Register task packages advertised in the ``longhaul`` entry point group.

        Returns:
            Number of entry points loaded
        """
        loaded = self._pm.load_setuptools_entrypoints(PROJECT_NAME)
        self._refresh_cache()
        if loaded:
            logger.info("Loaded task entry points", count=loaded)
        return loaded

    def _refresh_cache(self) -> None:
        new_tasks: dict[str, type[Task]] = {}
        for task_classes in self._pm.hook.longhaul_get_tasks():
            for cls in task_classes:
                existing = new_tasks.get(cls.name)
                if existing is not None and existing is not cls:
                    raise ValueError(f"Duplicate task name: '{cls.name}'. Already registered by {existing.__module__}.{existing.__qualname__}")
                new_tasks[cls.name] = cls

        # All validated, update cache
        self._tasks = new_tasks

    def named(self, name: str) -> type[Task]:
        """Look up a task class.

        Raises:
            TaskNotFoundError: If no task is registered under ``name``
        """
        try:
            return self._tasks[name]
        except KeyError:
            raise TaskNotFoundError(name) from None

    def available_tasks(self) -> list[type[Task]]:
        """All registered task classes, sorted by name."""
        return [self._tasks[name] for name in sorted(self._tasks)]

    def build(self, name: str, arguments: Mapping[str, Any] | None = None) -> Task:
        """Instantiate a task with validated arguments.

        Raises:
            TaskNotFoundError: If the task is not registered
            InvalidArgumentsError: If the arguments do not match its schema
        """
        return self.named(name)(arguments)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
