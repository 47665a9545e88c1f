"""Thread-safe cache with throttling for Kubernetes API queries.

Prometheus may scrape more often than the cluster inventory is worth
re-listing; the cache hands back the previous snapshot while it is still
within the throttle window.
"""

import time
from collections.abc import Callable
from threading import Lock
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class AtomicThrottledCache(Generic[T]):
    """Holds the last inventory and refreshes it at most once per window."""

    def __init__(self, limit: float):
        """Initialize the cache.

        Args:
            limit: Minimum seconds between inventory refreshes.
        """
        self._lock = Lock()
        self._limit = limit
        self._data: T | None = None
        self._fetched_at: float | None = None

    def _fresh(self) -> bool:
        if self._data is None or self._fetched_at is None:
            return False
        return time.time() - self._fetched_at < self._limit

    def fetch_or_throttle(self, fetch_func: Callable[[], T]) -> tuple[T, float | None]:
        """Return the cached inventory, or call fetch_func when it is stale.

        Concurrent callers wait on the lock, so a burst of scrapes against
        an empty cache lists the cluster once.

        Args:
            fetch_func: Function to fetch a fresh inventory.

        Returns:
            Tuple of (data, fetch_duration); fetch_duration is None on a
            cache hit. A None result is returned but not cached.
        """
        with self._lock:
            if self._fresh():
                logger.debug("Using cached inventory", limit_seconds=self._limit)
                return self._data, None

            start = time.time()
            data = fetch_func()
            duration = time.time() - start
            self._data = data
            self._fetched_at = time.time()
            logger.debug("Fetched fresh inventory", duration_seconds=round(duration, 3))
            return data, duration

    def age(self) -> float | None:
        """Seconds since the cached inventory was fetched, None if never fetched."""
        with self._lock:
            if self._data is None or self._fetched_at is None:
                return None
            return time.time() - self._fetched_at
