# libs/commerce_shared/tests/test_cache.py

import pytest
from libs.commerce_shared.cache import BoundedTTLCache


@pytest.mark.unit
class TestBoundedTTLCache:
    def test_set_and_get(self, clock):
        cache = BoundedTTLCache(ttl_seconds=10, clock=clock)
        cache.set("search:camera", {"products": []})

        assert cache.get("search:camera") == {"products": []}
        assert "search:camera" in cache
        assert len(cache) == 1

    def test_entry_not_observable_at_expiry(self, clock):
        cache = BoundedTTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")

        clock.advance(9.999)
        assert cache.get("k") == "v"

        clock.advance(0.001)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_lookup_distinguishes_cached_falsy_values(self, clock):
        cache = BoundedTTLCache(clock=clock)
        cache.set("empty", [])

        assert cache.lookup("empty") == (True, [])
        assert cache.lookup("missing") == (False, None)

    def test_get_default_on_miss(self, clock):
        cache = BoundedTTLCache(clock=clock)
        assert cache.get("missing", default="fallback") == "fallback"

    def test_capacity_evicts_earliest_expiry(self, clock):
        cache = BoundedTTLCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("first", 1)
        clock.advance(1)
        cache.set("second", 2)
        clock.advance(1)

        cache.set("third", 3)

        assert len(cache) == 2
        assert cache.get("first") is None
        assert cache.get("second") == 2
        assert cache.get("third") == 3

    def test_updating_existing_key_does_not_evict(self, clock):
        cache = BoundedTTLCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.set("a", 10)

        assert sorted(cache.keys()) == ["a", "b"]
        assert cache.get("a") == 10

    def test_update_refreshes_expiry(self, clock):
        cache = BoundedTTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", 1)
        clock.advance(8)
        cache.set("k", 2)
        clock.advance(8)

        assert cache.get("k") == 2

    def test_clear(self, clock):
        cache = BoundedTTLCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear()

        assert len(cache) == 0
        assert cache.keys() == []

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            BoundedTTLCache(max_size=0)
