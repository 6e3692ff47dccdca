"""Tests for the result cache."""

import uuid
from datetime import timedelta

from app.services.result_cache import (
    InMemoryCacheStore,
    ResultCache,
    cache_key,
    canonical_json,
)

from factories import NOW


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class TestCacheKey:
    def test_stable_across_option_order(self):
        scenario_id = uuid.uuid4()
        a = cache_key(scenario_id, {"test_mode": False, "scoring_strategy": "static"})
        b = cache_key(scenario_id, {"scoring_strategy": "static", "test_mode": False})
        assert a == b
        assert len(a) == 64

    def test_options_change_key(self):
        scenario_id = uuid.uuid4()
        base = {"ab_test_id": None, "scoring_strategy": "static", "test_mode": False}
        weighted = dict(base, scoring_strategy="weighted")
        experiment = dict(base, ab_test_id="exp-1")
        keys = {cache_key(scenario_id, opts) for opts in (base, weighted, experiment)}
        assert len(keys) == 3
        assert cache_key(uuid.uuid4(), base) not in keys

    def test_canonical_json_is_compact_and_sorted(self):
        assert canonical_json({"b": 1, "a": [1.5, None]}) == '{"a":[1.5,null],"b":1}'


class TestResultCache:
    """Tests for TTL-bounded, verbatim caching."""

    async def test_hit_returns_identical_text(self):
        cache = ResultCache(InMemoryCacheStore(), ttl_seconds=300, clock=FakeClock())
        body = '[{"confidence_score":85.0,"tier":"Bronze"}]'
        await cache.set("k", body)
        assert await cache.get("k") == body

    async def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = ResultCache(InMemoryCacheStore(), ttl_seconds=300, clock=clock)
        await cache.set("k", "[]")
        clock.now = NOW + timedelta(seconds=300)
        assert await cache.get("k") == "[]"
        clock.now = NOW + timedelta(seconds=301)
        assert await cache.get("k") is None

    async def test_last_writer_wins(self):
        cache = ResultCache(InMemoryCacheStore(), ttl_seconds=300, clock=FakeClock())
        await cache.set("k", "[1]")
        await cache.set("k", "[2]")
        assert await cache.get("k") == "[2]"

    async def test_invalidate(self):
        cache = ResultCache(InMemoryCacheStore(), ttl_seconds=300, clock=FakeClock())
        await cache.set("k", "[]")
        assert await cache.invalidate("k") is True
        assert await cache.get("k") is None
        assert await cache.invalidate("k") is False

    async def test_expired_entry_is_evicted_on_read(self):
        clock = FakeClock()
        store = InMemoryCacheStore()
        cache = ResultCache(store, ttl_seconds=300, clock=clock)
        await cache.set("k", "[]")
        clock.now = NOW + timedelta(seconds=301)
        assert await cache.get("k") is None
        assert "k" not in store._entries

    async def test_stale_entries_are_pruned_on_write(self):
        clock = FakeClock()
        store = InMemoryCacheStore()
        cache = ResultCache(store, ttl_seconds=300, clock=clock)
        await cache.set("old", "[1]")
        clock.now = NOW + timedelta(seconds=200)
        await cache.set("recent", "[2]")
        clock.now = NOW + timedelta(seconds=400)
        await cache.set("new", "[3]")
        assert sorted(store._entries) == ["new", "recent"]
