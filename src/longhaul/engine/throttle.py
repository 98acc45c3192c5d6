"""Throttle composition over an enumerator.

A throttle condition pairs a check ("should we back off right now?") with
a backoff duration. Before each element is handed to the consumer, every
condition is checked in declaration order; the first one reporting
throttled puts the worker to sleep for its backoff, then checking restarts
from the first condition. The element and its cursor are held unchanged
while throttled, so throttling can only delay emission, never skip or
repeat an element.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from longhaul.engine.clock import DEFAULT_CLOCK, Clock
from longhaul.engine.enumerators import Enumerator

if TYPE_CHECKING:
    from longhaul.core.rate_limit import RateLimiter

logger = structlog.get_logger(__name__)

DEFAULT_BACKOFF_SECONDS = 30.0


@dataclass(frozen=True)
class ThrottleCondition:
    """A (check, backoff) pair. ``check`` returns True while iteration should wait."""

    check: Callable[[], bool]
    backoff: float = DEFAULT_BACKOFF_SECONDS

    def __post_init__(self) -> None:
        if self.backoff <= 0:
            raise ValueError(f"backoff must be positive, got {self.backoff}")

    @classmethod
    def from_rate_limiter(cls, limiter: RateLimiter, backoff: float = 1.0) -> ThrottleCondition:
        """Throttle whenever ``limiter`` has no token for the next element.

        A passing check consumes one token, so each emitted element counts
        against the limiter's budget.
        """
        return cls(check=lambda: not limiter.try_acquire(), backoff=backoff)


def throttle_enumerator(
    enumerator: Enumerator,
    conditions: Sequence[ThrottleCondition],
    *,
    clock: Clock = DEFAULT_CLOCK,
) -> Enumerator:
    """Wrap ``enumerator`` so each element waits until no condition is throttled."""
    if not conditions:
        yield from enumerator
        return

    for element, cursor in enumerator:
        while (condition := _first_throttled(conditions)) is not None:
            logger.debug("Iteration throttled", backoff=condition.backoff)
            clock.sleep(condition.backoff)
        yield element, cursor


def _first_throttled(conditions: Sequence[ThrottleCondition]) -> ThrottleCondition | None:
    for condition in conditions:
        if condition.check():
            return condition
    return None
