"""Rate limiting for throttled iteration.

Uses pyrate-limiter with optional SQLite persistence.
"""

from longhaul.core.rate_limit.limiter import RateLimiter

__all__ = ["RateLimiter"]
