# src/longhaul/tasks/hookspecs.py
"""pluggy hook specifications for Longhaul task packages.

Packages that ship tasks implement these hooks to register them with the
task registry, either by being registered directly or through a
``longhaul`` entry point.

Usage (implementing a task package):
    from longhaul.tasks.hookspecs import hookimpl

    class MaintenancePlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def longhaul_get_tasks(self):
            return [BackfillTitlesTask, PurgeSessionsTask]

Note: @hookspec defines the hook interface (done here).
      @hookimpl marks implementations of those hooks.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from longhaul.tasks.base import Task

# Project name for pluggy, also the entry point group
PROJECT_NAME = "longhaul"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class LonghaulTaskSpec:
    """Hook specifications for task packages."""

    @hookspec
    def longhaul_get_tasks(self) -> list[type["Task"]]:  # type: ignore[empty-body]
        """Return task classes.

        Returns:
            List of Task subclasses (not instances)
        """
