"""Repository layer for run records.

Handles the seam between SQLAlchemy rows (strings, JSON text) and the Run
contract (strict enum status, decoded cursor/arguments). This is NOT a trust
boundary - if the database has bad data, we crash.
"""

from typing import Any

from sqlalchemy.engine import Row as SARow

from longhaul.contracts import Run, RunStatus
from longhaul.core.store._helpers import as_utc, load_json


class RunRepository:
    """Repository for Run records."""

    def load(self, row: SARow[Any]) -> Run:
        """Load Run from database row.

        Converts the status string to RunStatus. Crashes on invalid data.
        """
        arguments = load_json(row.arguments_json)
        return Run(
            run_id=row.run_id,
            task_name=row.task_name,
            status=RunStatus(row.status),  # Convert HERE
            arguments=arguments if arguments is not None else {},
            cursor=load_json(row.cursor_json),
            tick_count=row.tick_count,
            tick_total=row.tick_total,
            time_running=row.time_running,
            started_at=as_utc(row.started_at),
            ended_at=as_utc(row.ended_at),
            error_class=row.error_class,
            error_message=row.error_message,
            backtrace=load_json(row.backtrace_json),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )
