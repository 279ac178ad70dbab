from __future__ import annotations

from plaquer.models import Coordinate
from plaquer.services.cache import TTLCache, segment_cache_key


def test_ttl_cache_set_get(monkeypatch):
    times = {"value": 100.0}

    def fake_monotonic():
        return times["value"]

    monkeypatch.setattr("plaquer.services.cache.time.monotonic", fake_monotonic)

    cache = TTLCache[str](ttl_s=10.0, max_size=10)
    cache.set("key", "value")
    assert cache.get("key") == "value"

    times["value"] = 111.0
    assert cache.get("key") is None
    assert len(cache) == 0


def test_ttl_cache_evicts_least_recently_used():
    cache = TTLCache[str](ttl_s=100.0, max_size=2)
    cache.set("a", "one")
    cache.set("b", "two")
    # reading "a" makes "b" the eviction candidate
    assert cache.get("a") == "one"
    cache.set("c", "three")

    assert cache.get("b") is None
    assert cache.get("a") == "one"
    assert cache.get("c") == "three"


def test_ttl_cache_clear():
    cache = TTLCache[int](ttl_s=100.0, max_size=4)
    cache.set("x", 1)
    cache.clear()
    assert cache.get("x") is None


def test_segment_cache_key_is_direction_sensitive():
    a = Coordinate(lat=51.5, lon=-0.12)
    b = Coordinate(lat=51.51, lon=-0.13)
    assert segment_cache_key(a, b) == segment_cache_key(Coordinate(lat=51.5000000001, lon=-0.12), b)
    assert segment_cache_key(a, b) != segment_cache_key(b, a)


def test_ttl_cache_with_zero_size_stores_nothing():
    cache = TTLCache[int](ttl_s=100.0, max_size=0)
    cache.set("x", 1)
    assert cache.get("x") is None
    assert len(cache) == 0
