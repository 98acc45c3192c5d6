# src/longhaul/engine/clock.py
"""Clock abstraction for testable time-dependent logic.

The ticker's flush interval, throttle backoff, the host's job runtime
limit and run timestamps all read time through a Clock so tests can
control it without sleeping.

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for elapsed time, wall time and sleeping."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds, for elapsed time calculations."""
        ...

    def now(self) -> datetime:
        """Return the current UTC wall time, for persisted timestamps."""
        ...

    def sleep(self, seconds: float) -> None:
        """Suspend the calling thread for ``seconds``."""
        ...


class SystemClock:
    """Production clock using time.monotonic(), datetime.now(UTC) and time.sleep()."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(UTC)

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class MockClock:
    """Controllable clock for deterministic testing.

    sleep() advances time instead of blocking and records each request.

    Example:
        clock = MockClock(start=0.0)
        ticker = Ticker(1.0, persist, clock=clock)

        ticker.tick()  # No flush at t=0
        clock.advance(1.5)
        ticker.tick()  # Flushes 2 ticks over 1.5s
    """

    def __init__(self, start: float = 0.0, wall_start: datetime | None = None) -> None:
        """Initialize mock clock.

        Args:
            start: Initial monotonic time value (default 0.0).
            wall_start: Initial wall time (default 2024-01-01 UTC).
        """
        self._current = start
        self._wall_start = wall_start or datetime(2024, 1, 1, tzinfo=UTC)
        self._start = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self._current

    def now(self) -> datetime:
        return self._wall_start + timedelta(seconds=self._current - self._start)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
