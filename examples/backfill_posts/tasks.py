"""Example maintenance tasks over the posts table.

    python generate_data.py 5000
    python -m longhaul.cli -s settings.yaml tasks
    python -m longhaul.cli -s settings.yaml perform Maintenance::BackfillTitlesTask -a prefix=Draft
    python -m longhaul.cli -s settings.yaml perform Maintenance::ImportPostsTask --csv posts.csv

Both tasks share a write budget on the application database, so a long
backfill and an import running side by side stay under it together.
"""

from __future__ import annotations

from typing import Any

from app import get_engine, posts_table
from sqlalchemy import func, insert, select, update

from longhaul.core.rate_limit import RateLimiter
from longhaul.tasks import CsvTask, RecordSet, Task, TaskArguments, ThrottleCondition

# Persisted so several worker processes draw from the same budget
write_budget = RateLimiter("posts_writes", requests_per_second=200, persistence_path="ratelimit.db")


class BackfillTitlesArguments(TaskArguments):
    prefix: str = "Untitled"
    category: str | None = None


class BackfillTitlesTask(Task):
    """Gives every untitled post a placeholder title."""

    name = "Maintenance::BackfillTitlesTask"
    Arguments = BackfillTitlesArguments

    def _untitled(self) -> Any:
        query = select(posts_table).where(posts_table.c.title.is_(None))
        category = self.arguments.category  # type: ignore[attr-defined]
        if category is not None:
            query = query.where(posts_table.c.category == category)
        return query

    def collection(self) -> RecordSet:
        return RecordSet(get_engine(), self._untitled(), key=posts_table.c.id, page_size=500)

    def count(self) -> int:
        query = select(func.count()).select_from(self._untitled().subquery())
        with get_engine().connect() as conn:
            return int(conn.execute(query).scalar_one())

    def process(self, post: Any) -> None:
        title = f"{self.arguments.prefix} #{post.id}"  # type: ignore[attr-defined]
        with get_engine().begin() as conn:
            conn.execute(update(posts_table).where(posts_table.c.id == post.id).values(title=title))


class ImportPostsTask(CsvTask):
    """Inserts the rows of an uploaded posts CSV."""

    name = "Maintenance::ImportPostsTask"

    def process(self, row: dict[str, str]) -> None:
        with get_engine().begin() as conn:
            conn.execute(
                insert(posts_table).values(
                    title=row["title"] or None,
                    body=row["body"],
                    category=row["category"],
                )
            )


_budget = ThrottleCondition.from_rate_limiter(write_budget, backoff=0.5)
BackfillTitlesTask.throttle_conditions = (_budget,)
ImportPostsTask.throttle_conditions = (_budget,)
