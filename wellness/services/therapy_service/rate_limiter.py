"""Per-session rate limiting on the `limits` fixed-window strategy.

A window opens on the first request for an identifier and lasts
window_seconds. Counters live in process memory; a multi-instance
deployment would swap MemoryStorage for a shared backend such as Redis.
"""
import logging
from datetime import datetime
from typing import Optional

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from wellness.shared.utils import hash_pii

logger = logging.getLogger(__name__)


class RateLimitExceededError(Exception):
    """Identifier exhausted its request budget for the current window."""
    pass


class RateLimiter:
    """Allows `limit` calls per identifier in each fixed window."""

    def __init__(self, limit: int = 20, window_seconds: int = 60):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")

        self.limit = limit
        self.window_seconds = int(window_seconds)
        self._item = RateLimitItemPerSecond(limit, self.window_seconds)
        self._strategy = FixedWindowRateLimiter(MemoryStorage())

    def check(self, identifier: str) -> bool:
        """Count one request; False when the identifier is over its limit."""
        allowed = self._strategy.hit(self._item, identifier)

        if not allowed:
            logger.warning(
                "RATE_LIMIT_EXCEEDED",
                extra={
                    "identifier_hash": hash_pii(identifier),
                    "limit": self.limit,
                    "window_seconds": self.window_seconds,
                }
            )
        return allowed

    def remaining(self, identifier: str) -> int:
        return self._strategy.get_window_stats(self._item, identifier).remaining

    def reset_time(self, identifier: str) -> Optional[datetime]:
        """UTC time the current window closes, None if no window is open."""
        stats = self._strategy.get_window_stats(self._item, identifier)
        if stats.remaining >= self.limit:
            return None
        return datetime.utcfromtimestamp(stats.reset_time)

    def reset(self, identifier: str) -> None:
        self._strategy.clear(self._item, identifier)
