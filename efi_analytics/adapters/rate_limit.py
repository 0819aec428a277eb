"""Client-side throttling shared by every outbound provider request."""

from __future__ import annotations

import random
import threading
import time
from typing import Callable


class TokenBucket:
    """Thread-safe token bucket.

    ``rate`` tokens are added per second up to ``capacity``. :meth:`acquire`
    blocks until a token is available, so concurrent workers sharing one
    bucket never exceed the configured request rate.
    """

    def __init__(
        self,
        rate: float,
        capacity: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = float(rate)
        self.capacity = float(capacity if capacity is not None else max(1.0, rate))
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def acquire(self, tokens: float = 1.0) -> float:
        """Block until ``tokens`` are available; return the time spent waiting."""

        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return waited
                wait = (tokens - self._tokens) / self.rate
            self._sleep(wait)
            waited += wait


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: float = 0.0) -> float:
    """Exponential delay ``base_delay * 2**attempt`` capped at ``max_delay`` plus jitter."""

    delay = min(max_delay, base_delay * (2 ** attempt))
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return delay


__all__ = ["TokenBucket", "backoff_delay"]
