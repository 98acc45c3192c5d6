"""Progress ticker: batches per-element ticks into periodic store writes.

Writing progress for every processed element would push all throughput
through the run store. The ticker accumulates ticks in memory and only
hands them to its persist callback once ``delay`` seconds have passed
since the last flush. Elapsed time is checked when a tick arrives; there
is no background thread, so flush timing is bounded by per-element latency.
"""

from __future__ import annotations

from collections.abc import Callable

from longhaul.engine.clock import DEFAULT_CLOCK, Clock

PersistCallback = Callable[[int, float], None]


class Ticker:
    """Accumulates ticks and flushes (ticks, seconds elapsed) periodically."""

    def __init__(self, delay: float, persist: PersistCallback, *, clock: Clock = DEFAULT_CLOCK) -> None:
        """Initialize the ticker.

        Args:
            delay: Minimum seconds between two flushes
            persist: Called with (ticks, duration) on flush
            clock: Time source
        """
        self._delay = delay
        self._persist = persist
        self._clock = clock
        self._last_persisted = clock.monotonic()
        self._ticks_recorded = 0

    @property
    def pending_ticks(self) -> int:
        return self._ticks_recorded

    def tick(self) -> None:
        """Record one processed element, flushing if the delay has elapsed."""
        self._ticks_recorded += 1
        if self._clock.monotonic() - self._last_persisted >= self._delay:
            self.persist()

    def persist(self) -> None:
        """Flush pending ticks now, regardless of the delay.

        Does nothing when no ticks are pending; the elapsed time then keeps
        accruing into the next flush.
        """
        if self._ticks_recorded == 0:
            return

        current = self._clock.monotonic()
        duration = current - self._last_persisted
        self._last_persisted = current
        ticks = self._ticks_recorded
        self._ticks_recorded = 0
        self._persist(ticks, duration)
