"""
Cache Manager for Computed Routes
In-memory cache that lets concurrent identical requests share one computation.
"""
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class RouteCache:
    """
    Process-lifetime cache keyed by any hashable value.

    At most one computation runs per key: the first caller computes, later
    callers for the same key wait on the same Future. Failed computations are
    evicted so the next request retries. Entries never expire.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Future] = {}
        self._hits = 0
        self._misses = 0

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """
        Return the cached value for key, computing it once if absent.

        Args:
            key: Cache key
            compute: Zero-argument callable producing the value

        Returns:
            The value, identical (same object) for every caller of the same key

        Raises:
            Whatever compute raised; the failure is not cached
        """
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future
                self._misses += 1
            else:
                self._hits += 1

        if not owner:
            return future.result()

        try:
            value = compute()
        except BaseException as e:
            with self._lock:
                if self._entries.get(key) is future:
                    del self._entries[key]
            future.set_exception(e)
            logger.warning(f"Route computation failed for {key!r}; not cached")
            raise

        future.set_result(value)
        return value

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info(f"Cleared route cache ({count} entries)")

    def stats(self) -> Dict[str, int]:
        """Entry count and hit/miss counters since the last clear()."""
        with self._lock:
            return {
                'entries': len(self._entries),
                'hits': self._hits,
                'misses': self._misses
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
