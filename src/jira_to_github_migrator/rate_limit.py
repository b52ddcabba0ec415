"""Process-wide spacing of GitHub write requests.

GitHub asks integrators that make many POST, PATCH, PUT or DELETE requests for a
single user to wait at least one second between them. The import API is
additionally throttled per token, so client-side parallelism buys nothing.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_SECONDS = 1.0


class RateLimitGovernor:
    """Serializing gate guaranteeing a minimum interval between permits."""

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            msg = f"Minimum interval must not be negative: {min_interval}"
            raise ValueError(msg)
        self.min_interval: float = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_call_at: float | None = None
        self.permits_issued: int = 0

    def acquire(self) -> None:
        """Block until the next call is allowed, then reserve the following slot."""
        with self._lock:
            now = self._clock()
            if self._next_call_at is not None and now < self._next_call_at:
                delay = self._next_call_at - now
                logger.debug(f"Rate limit: waiting {delay:.2f}s before next request")
                self._sleep(delay)
                now = self._next_call_at
            self._next_call_at = now + self.min_interval
            self.permits_issued += 1
