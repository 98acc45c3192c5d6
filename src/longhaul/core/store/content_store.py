"""Bulk content attached to runs (CSV uploads).

One named blob per run, written when the run is created and downloaded
once by the worker before iteration starts.
"""

from dataclasses import dataclass

from sqlalchemy import select

from longhaul.core.store._database_ops import DatabaseOps
from longhaul.core.store._helpers import now
from longhaul.core.store.database import RunDB
from longhaul.core.store.schema import run_contents_table


@dataclass(frozen=True)
class Attachment:
    """A blob attached to a run."""

    run_id: str
    filename: str
    content: bytes


class ContentStore:
    """Stores and fetches the single attachment of a run."""

    def __init__(self, db: RunDB) -> None:
        self._ops = DatabaseOps(db)

    def attach(self, run_id: str, filename: str, content: bytes) -> Attachment:
        self._ops.execute_insert(
            run_contents_table.insert().values(
                run_id=run_id,
                filename=filename,
                content=content,
                created_at=now(),
            )
        )
        return Attachment(run_id=run_id, filename=filename, content=content)

    def fetch(self, run_id: str) -> Attachment | None:
        row = self._ops.execute_fetchone(select(run_contents_table).where(run_contents_table.c.run_id == run_id))
        if row is None:
            return None
        return Attachment(run_id=row.run_id, filename=row.filename, content=row.content)

    def download(self, run_id: str) -> str:
        """Return the attachment decoded as UTF-8 text.

        Raises:
            LookupError: If the run has no attachment
        """
        attachment = self.fetch(run_id)
        if attachment is None:
            raise LookupError(f"Run {run_id} has no attached content")
        return attachment.content.decode("utf-8")
