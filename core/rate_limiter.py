"""
Sliding-window rate limiter for externally visible actions.
"""

import asyncio
import time
import logging
from collections import deque
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Allows at most ``max_actions`` acquisitions per ``window`` seconds.

    Waiters are served in arrival order: the lock is held while a caller
    sleeps for a free slot, so later callers queue behind it instead of
    racing for the same slot.
    """

    def __init__(
        self,
        max_actions: int,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_actions < 1:
            raise ValueError("max_actions must be at least 1")
        self.max_actions = max_actions
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._timestamps = deque()
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait until one more action fits in the window, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self.max_actions:
                    self._timestamps.append(now)
                    return
                wait = self._timestamps[0] + self.window - now
                logger.debug(f"Rate limit reached, waiting {wait:.1f}s")
                await self._sleep(max(0.0, wait))

    def count(self) -> int:
        """Number of actions recorded in the current window."""
        self._prune(self._clock())
        return len(self._timestamps)

    def reset(self):
        self._timestamps.clear()

    def _prune(self, now: float):
        cutoff = now - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
