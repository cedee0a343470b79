"""
Reserveo - In-Memory TTL Cache
Keyed store with per-entry expiry, approximate byte accounting and
least-recently-used eviction. Used for settings documents read on every request.
"""

from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple
import json
import logging
import threading
import time

# Configure logging
logger = logging.getLogger(__name__)


class TTLCache:
    """
    Thread-safe TTL cache bounded by the JSON-encoded size of its values.

    Args:
        ttl_seconds: Lifetime of an entry
        max_bytes: Total size budget; least recently used entries are evicted above it
    """

    def __init__(self, ttl_seconds: float = 300, max_bytes: int = 256 * 1024):
        self.ttl_seconds = ttl_seconds
        self.max_bytes = max_bytes
        # key -> (value, stored_at, size)
        self._entries: "OrderedDict[str, Tuple[Any, float, int]]" = OrderedDict()
        self._size = 0
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @staticmethod
    def estimate_size(value: Any) -> int:
        return len(json.dumps(value, default=str).encode("utf-8"))

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, stored_at, size = entry
            if time.monotonic() - stored_at > self.ttl_seconds:
                self._remove(key)
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any) -> bool:
        """
        Store a value. Returns False when the value alone exceeds the budget.
        """
        size = self.estimate_size(value)
        if size > self.max_bytes:
            logger.warning(f"Cache entry '{key}' too large ({size} bytes), not stored")
            return False

        with self._lock:
            if key in self._entries:
                self._remove(key)

            while self._entries and self._size + size > self.max_bytes:
                oldest = next(iter(self._entries))
                logger.debug(f"Evicting cache entry '{oldest}'")
                self._remove(oldest)

            self._entries[key] = (value, time.monotonic(), size)
            self._size += size
            return True

    def invalidate(self, key: str) -> None:
        with self._lock:
            if key in self._entries:
                self._remove(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._size = 0

    def cleanup_expired(self) -> int:
        """Drop expired entries, returns how many were removed."""
        now = time.monotonic()
        with self._lock:
            expired = [
                key for key, (_, stored_at, _) in self._entries.items()
                if now - stored_at > self.ttl_seconds
            ]
            for key in expired:
                self._remove(key)
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "size_bytes": self._size,
                "max_bytes": self.max_bytes,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    def _remove(self, key: str) -> None:
        _, _, size = self._entries.pop(key)
        self._size -= size
