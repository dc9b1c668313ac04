"""
Circuit breaker for risky site operations.

Opens after a run of consecutive failures and rejects further attempts
with CircuitOpenError until the cooldown has elapsed since it opened.
After the cooldown one trial call is let through: a failure reopens the
circuit immediately, a success closes it and clears the count.
"""

import time
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.failures = 0
        self.state = CircuitState.CLOSED
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection.

        Raises CircuitOpenError without calling ``operation`` while open;
        otherwise re-raises whatever ``operation`` raises.
        """
        if self.state == CircuitState.OPEN:
            if self._clock() - self.opened_at >= self.reset_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info("Circuit breaker cooldown elapsed, allowing a trial request")
            else:
                raise CircuitOpenError()

        try:
            result = await operation()
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def reset(self):
        """Force the breaker closed."""
        self.failures = 0
        self.state = CircuitState.CLOSED
        self.opened_at = None

    def _record_failure(self):
        self.failures += 1
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()
            logger.warning("Circuit breaker trial request failed, reopening")
        elif self.failures >= self.failure_threshold:
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()
            logger.warning(f"Circuit breaker opened after {self.failures} consecutive failures")

    def _record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker recovered, closing")
        self.failures = 0
        self.state = CircuitState.CLOSED
        self.opened_at = None
