# File: cache.py
# Fixed-capacity memo of preprocessing output, evicting in insertion order.

import logging
from threading import Lock
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CACHE_CAPACITY = 50


class BoundedCache:
    """
    Key/value store holding at most ``capacity`` entries.

    When full, the entry inserted first is evicted before a new key is added.
    Updating an existing key keeps its place in the eviction order.
    """

    def __init__(self, capacity: int = DEFAULT_CACHE_CAPACITY):
        if int(capacity) < 1:
            raise ValueError(f"Cache capacity must be at least 1, got {capacity}.")
        self.capacity = int(capacity)
        self._lock = Lock()
        # dicts keep insertion order and value updates do not move a key
        self._entries: Dict[str, str] = {}

    def add(self, key: str, value: str) -> None:
        with self._lock:
            if key in self._entries:
                self._entries[key] = value
                return
            if len(self._entries) >= self.capacity:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
                logger.debug("Cache full (%d). Evicted oldest key '%s'.", self.capacity, oldest_key)
            self._entries[key] = value

    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None when the key is not present."""
        with self._lock:
            return self._entries.get(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
