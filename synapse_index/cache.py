"""
Bounded LRU cache for search results.

Entries never expire on their own; the least-recently-used entry is evicted
when the cache is full. Nothing is invalidated on index writes, so a repeated
query returns the cached result list until it is evicted or cleared.
"""

import json
import logging
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class LRUCache:
    """
    A simple thread-safe least-recently-used cache.

    Attributes:
        capacity: Maximum number of entries
    """

    def __init__(self, capacity: int = 100):
        """
        Initialize the cache.

        Args:
            capacity: Maximum cache size (default: 100 entries)
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._cache: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Get a value from the cache and mark it most recently used.

        Returns None if the key is not cached.
        """
        with self._lock:
            if key not in self._cache:
                self._misses += 1
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            return self._cache[key]

    def set(self, key: Hashable, value: Any) -> None:
        """Store a value, evicting the least recently used entry if full."""
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self.capacity:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug(f"Evicted cache entry: {evicted}")
            self._cache[key] = value

    def clear(self) -> int:
        """
        Clear all entries from the cache.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._cache

    @property
    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = self._hits / total if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate
            }

    def __len__(self) -> int:
        """Return current cache size."""
        with self._lock:
            return len(self._cache)


def make_cache_key(**params: Any) -> str:
    """
    Create a canonical cache key from search parameters.

    Keys are sorted so argument order never matters.
    """
    return json.dumps(params, sort_keys=True, default=str)
