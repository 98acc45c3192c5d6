"""Database operation helpers to reduce boilerplate in the run store.

Consolidates the repeated `with self._db.connection() as conn:` pattern.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy import Executable
from sqlalchemy.engine import Row

if TYPE_CHECKING:
    from longhaul.core.store.database import RunDB


class DatabaseOps:
    """Helper for common database operations."""

    def __init__(self, db: "RunDB") -> None:
        self._db = db

    def execute_fetchone(self, query: Executable) -> Row[Any] | None:
        """Execute query and return single row or None."""
        with self._db.connection() as conn:
            return conn.execute(query).fetchone()

    def execute_fetchall(self, query: Executable) -> list[Row[Any]]:
        """Execute query and return all rows."""
        with self._db.connection() as conn:
            return list(conn.execute(query).fetchall())

    def execute_insert(self, stmt: Executable) -> None:
        """Execute insert statement.

        Raises:
            ValueError: If zero rows are affected
        """
        with self._db.connection() as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                raise ValueError("execute_insert: zero rows affected")

    def execute_update(self, stmt: Executable) -> int:
        """Execute update statement and return the number of rows it touched.

        Zero is a legitimate answer for conditional updates, so it is
        returned rather than raised.
        """
        with self._db.connection() as conn:
            return conn.execute(stmt).rowcount
