"""
Request throttling for the provider.

The public Nominatim server allows an absolute maximum of one request per
second per installation. Batch runs share one gate across all worker
threads; cache hits never reach it.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from .base import RateLimiter


class SimpleRateGate(RateLimiter):
    """
    Fixed minimum interval between consecutive requests.

    Thread-safe: callers queue on a lock and each one reserves the next
    free slot before sleeping.
    """

    def __init__(self, requests_per_second: float):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be > 0")

        self.interval = 1.0 / float(requests_per_second)
        self._next_slot = time.monotonic()
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            time.sleep(delay)


class NoOpRateLimiter(RateLimiter):
    """Rate limiter that never blocks (private servers, tests)."""

    def wait(self) -> None:
        pass


def rate_limiter_for(requests_per_second: Optional[float]) -> RateLimiter:
    """Gate for a configured rate; no limit when the rate is unset."""
    if requests_per_second is None:
        return NoOpRateLimiter()
    return SimpleRateGate(requests_per_second)
