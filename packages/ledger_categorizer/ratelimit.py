"""Cooperative request pacing for the remote ledger source.

A fixed request budget is rationed over a fixed window. Once the budget is
spent the caller blocks until the window resets, then the budget refills
completely. Waiting is not an error.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .logging_setup import get_logger

_logger = get_logger("ledger_categorizer.ratelimit")


class WindowRateLimiter:
    """Allow at most ``max_requests`` calls to :meth:`acquire` per window.

    ``clock`` and ``sleep`` are injectable so tests can drive time manually.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._window_start: float | None = None
        self._used = 0
        self._lock = threading.Lock()

    def acquire(self) -> float:
        """Consume one request slot, blocking while the budget is spent.

        Returns the number of seconds spent waiting (``0.0`` when a slot was
        immediately available).
        """

        waited = 0.0
        with self._lock:
            now = self._clock()
            if self._window_start is None or now - self._window_start >= self.window_seconds:
                self._window_start = now
                self._used = 0
            if self._used >= self.max_requests:
                delay = self._window_start + self.window_seconds - now
                if delay > 0:
                    _logger.debug("ratelimit:wait seconds=%.3f", delay)
                    self._sleep(delay)
                    waited = delay
                self._window_start = self._clock()
                self._used = 0
            self._used += 1
        return waited


__all__ = ["WindowRateLimiter"]
