"""
Reserveo - TTL Cache Tests
Expiry, size budget, LRU eviction and statistics of the settings cache.

Run: pytest tests/test_cache.py -v
"""

import pytest
from unittest.mock import patch

from utils.cache import TTLCache


@pytest.fixture
def clock():
    """Controllable monotonic clock for the cache module."""
    with patch("utils.cache.time") as mock_time:
        mock_time.monotonic.return_value = 1000.0
        yield mock_time.monotonic


class TestTTLCache:
    """Unit tests for TTLCache."""

    def test_get_and_set(self, clock):
        cache = TTLCache(ttl_seconds=60)

        assert cache.set("reservation", {"advance_reservation_days": 7}) is True
        assert cache.get("reservation") == {"advance_reservation_days": 7}
        assert cache.get("checkin") is None

    def test_entry_expires(self, clock):
        """
        Test: Read an entry after its TTL
        Expected: Miss, entry dropped from the size accounting
        """
        cache = TTLCache(ttl_seconds=60)
        cache.set("reservation", {"a": 1})

        clock.return_value = 1061.0

        assert cache.get("reservation") is None
        assert cache.stats()["entries"] == 0
        assert cache.stats()["size_bytes"] == 0

    def test_invalidate_and_clear(self, clock):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None
        assert cache.get("b") == 2

        cache.clear()
        assert cache.stats()["entries"] == 0

    def test_too_large_value_not_stored(self, clock):
        cache = TTLCache(max_bytes=10)

        assert cache.set("big", "x" * 50) is False
        assert cache.get("big") is None

    def test_least_recently_used_evicted(self, clock):
        """
        Test: Budget for two entries, "a" read before adding "c"
        Expected: "b" evicted, "a" and "c" kept
        """
        size = TTLCache.estimate_size("v1")
        cache = TTLCache(max_bytes=size * 2)
        cache.set("a", "v1")
        cache.set("b", "v2")
        cache.get("a")

        cache.set("c", "v3")

        assert cache.get("b") is None
        assert cache.get("a") == "v1"
        assert cache.get("c") == "v3"

    def test_overwrite_keeps_size_consistent(self, clock):
        cache = TTLCache()
        cache.set("a", "short")
        cache.set("a", "a longer value")

        assert cache.stats()["size_bytes"] == TTLCache.estimate_size("a longer value")

    def test_cleanup_expired(self, clock):
        cache = TTLCache(ttl_seconds=60)
        cache.set("old", 1)
        clock.return_value = 1030.0
        cache.set("new", 2)
        clock.return_value = 1070.0

        assert cache.cleanup_expired() == 1
        assert cache.get("new") == 2

    def test_stats(self, clock):
        cache = TTLCache(max_bytes=1024)
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("b")

        assert cache.stats() == {
            "entries": 1,
            "size_bytes": TTLCache.estimate_size(1),
            "max_bytes": 1024,
            "hits": 2,
            "misses": 1,
            "hit_rate": 0.667,
        }

    @pytest.mark.parametrize("value,expected", [
        (1, 1),
        ("ab", 4),
        ({"k": True}, 11),
    ])
    def test_estimate_size(self, value, expected):
        assert TTLCache.estimate_size(value) == expected
