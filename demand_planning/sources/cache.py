# demand_planning/sources/cache.py
import threading
import time
from typing import Any, Callable, Hashable, Optional

from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)


class TTLCache:
    """Time-based cache for upstream fetch results.

    Entries are keyed by whatever identifies the fetch (source and
    parameters) and expire ttl_seconds after they were loaded. Failed loads
    are not cached. Safe to share between threads.
    """

    def __init__(self, ttl_seconds: float, name: str = 'cache', clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def _fresh(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        loaded_at, value = entry
        if self._clock() - loaded_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._fresh(key)
        return entry[1] if entry else None

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value for key, loading it when missing or expired.

        Args:
            key: Cache key
            loader: Callable producing the value

        Returns:
            Cached or freshly loaded value
        """
        with self._lock:
            entry = self._fresh(key)
        if entry is not None:
            logger.debug(f"{self.name}: hit for {key}")
            return entry[1]

        logger.debug(f"{self.name}: loading {key}")
        value = loader()
        self.put(key, value)
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one entry, or every entry when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
        logger.info(f"{self.name}: invalidated {'all entries' if key is None else key}")

    def age(self, key: Hashable) -> Optional[float]:
        """Seconds since key was loaded, None when it is not cached."""
        with self._lock:
            entry = self._fresh(key)
        if entry is None:
            return None
        return self._clock() - entry[0]

    def __len__(self):
        with self._lock:
            return len(self._entries)
