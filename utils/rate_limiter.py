"""
Per-user command rate limiting.
"""
import logging
import time
from typing import Callable, Dict, Hashable, Optional

from core.models import RateLimitEntry

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window limiter: at most `max_requests` per user per window.
    Expired entries are purged lazily by `purge_expired`.
    """

    def __init__(
        self,
        window_seconds: float = 10,
        max_requests: int = 3,
        clock: Callable[[], float] = time.time
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._entries: Dict[Hashable, RateLimitEntry] = {}

    def is_rate_limited(self, user_id: Optional[Hashable]) -> bool:
        """Count a request for user_id and report whether it exceeds the limit."""
        if not user_id:
            return False

        now = self._clock()
        entry = self._entries.get(user_id)

        if entry is None or now > entry.reset_time:
            self._entries[user_id] = RateLimitEntry(count=1, reset_time=now + self.window_seconds)
            return False

        if entry.count >= self.max_requests:
            return True

        entry.count += 1
        return False

    def purge_expired(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        expired = [user_id for user_id, entry in self._entries.items() if now > entry.reset_time]
        for user_id in expired:
            del self._entries[user_id]
        if expired:
            logger.debug(f"Purged {len(expired)} rate limit entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
