"""Rate limiter wrapper around pyrate-limiter.

Used to throttle task iteration against a shared budget, e.g. "no more
than 50 writes per second against the primary database".
"""

from __future__ import annotations

import re
import sqlite3
import threading
from typing import TYPE_CHECKING

from pyrate_limiter import (  # type: ignore[attr-defined]
    Duration,
    InMemoryBucket,
    Limiter,
    Rate,
    SQLiteBucket,
    SQLiteQueries,
)

if TYPE_CHECKING:
    from types import TracebackType

# Names end up in SQL table names
_VALID_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")


class RateLimiter:
    """Non-blocking rate limiter for throttle conditions.

    Wraps pyrate-limiter with optional SQLite persistence so several worker
    processes can share one budget.

    Example:
        limiter = RateLimiter("primary_writes", requests_per_second=50)

        if limiter.try_acquire():
            write_row()
        else:
            back_off()
    """

    def __init__(
        self,
        name: str,
        requests_per_second: int,
        requests_per_minute: int | None = None,
        persistence_path: str | None = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            name: Identifier for this rate limiter (used as bucket key).
                Must start with a letter and contain only alphanumeric
                characters and underscores.
            requests_per_second: Maximum acquisitions per second. Must be > 0.
            requests_per_minute: Optional maximum acquisitions per minute.
            persistence_path: Optional SQLite database path for persistence

        Raises:
            ValueError: If name is invalid or rate limits are not positive.
        """
        if not _VALID_NAME_PATTERN.match(name):
            raise ValueError(
                f"Invalid rate limiter name: {name!r}. "
                "Name must start with a letter and contain only alphanumeric characters and underscores."
            )
        if requests_per_second <= 0:
            raise ValueError(f"requests_per_second must be positive, got {requests_per_second}")
        if requests_per_minute is not None and requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be positive, got {requests_per_minute}")

        self.name = name
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        if persistence_path:
            self._conn = sqlite3.connect(persistence_path, check_same_thread=False)

        # pyrate-limiter can skip checking longer-interval rates while under the
        # shorter one, so each interval gets its own limiter.
        self._limiters: list[Limiter] = []
        self._buckets: list[InMemoryBucket | SQLiteBucket] = []
        self._add_limiter(Rate(requests_per_second, Duration.SECOND), "second")
        if requests_per_minute is not None:
            self._add_limiter(Rate(requests_per_minute, Duration.MINUTE), "minute")

    def _add_limiter(self, rate: Rate, interval: str) -> None:
        bucket: InMemoryBucket | SQLiteBucket
        if self._conn is not None:
            table_name = f"ratelimit_{self.name}_{interval}"
            self._conn.execute(SQLiteQueries.CREATE_BUCKET_TABLE.format(table=table_name))
            self._conn.commit()
            bucket = SQLiteBucket(rates=[rate], conn=self._conn, table=table_name)
        else:
            bucket = InMemoryBucket(rates=[rate])
        self._buckets.append(bucket)
        self._limiters.append(Limiter(bucket, max_delay=None, raise_when_fail=False))

    def _would_all_buckets_accept(self, weight: int) -> bool:
        """Peek at every bucket without consuming tokens."""
        for bucket in self._buckets:
            current_count = bucket.count()
            for rate in bucket.rates:
                if current_count + weight > rate.limit:
                    return False
        return True

    def try_acquire(self, weight: int = 1) -> bool:
        """Try to acquire tokens from every interval without blocking.

        Tokens are only consumed when all intervals have capacity, so a
        refusal never eats into the per-second budget.

        Returns:
            True if acquired, False if rate limited
        """
        with self._lock:
            if not self._would_all_buckets_accept(weight):
                return False
            return all([limiter.try_acquire(self.name, weight=weight) for limiter in self._limiters])

    def close(self) -> None:
        """Dispose buckets and release the persistence connection."""
        for limiter, bucket in zip(self._limiters, self._buckets, strict=True):
            limiter.dispose(bucket)
        self._limiters.clear()
        self._buckets.clear()
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> RateLimiter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
