"""Tests for the namespaced TTL cache."""
import asyncio

import pytest

from signage.services.cache import ALL_KEY, CacheEntry, CacheNamespace, SignageCache


class Counter:
    def __init__(self, value="value"):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return f"{self.value}-{self.calls}"


class TestCacheEntry:
    def test_valid_until_ttl_elapsed_inclusive(self):
        entry = CacheEntry(data="x", timestamp=100.0, ttl=10.0)

        assert entry.is_valid(100.0)
        assert entry.is_valid(110.0)
        assert not entry.is_valid(110.001)


class TestGetOrCompute:
    async def test_second_read_is_served_from_cache(self, cache):
        fetch = Counter()

        first = await cache.states.get_or_compute("A", fetch)
        second = await cache.states.get_or_compute("A", fetch)

        assert first == second == "value-1"
        assert fetch.calls == 1

    async def test_fetches_again_after_ttl(self, cache, clock):
        fetch = Counter()

        await cache.states.get_or_compute("A", fetch)
        clock.advance(300)
        assert await cache.states.get_or_compute("A", fetch) == "value-1"

        clock.advance(0.5)
        assert await cache.states.get_or_compute("A", fetch) == "value-2"
        assert fetch.calls == 2

    async def test_per_call_ttl_overrides_default(self, cache, clock):
        fetch = Counter()

        await cache.scenarios.get_or_compute("A:s1", fetch, ttl=1)
        clock.advance(2)
        await cache.scenarios.get_or_compute("A:s1", fetch, ttl=1)

        assert fetch.calls == 2

    async def test_fetch_error_propagates_and_is_not_cached(self, cache):
        attempts = []

        async def failing():
            attempts.append(1)
            raise RuntimeError("database unreachable")

        with pytest.raises(RuntimeError, match="database unreachable"):
            await cache.states.get_or_compute("A", failing)
        with pytest.raises(RuntimeError):
            await cache.states.get_or_compute("A", failing)

        assert len(attempts) == 2
        assert cache.stats()["states"] == 0

    async def test_none_result_is_cached(self, cache):
        calls = []

        async def missing():
            calls.append(1)
            return None

        assert await cache.states.get_or_compute("ghost", missing) is None
        assert await cache.states.get_or_compute("ghost", missing) is None
        assert len(calls) == 1

    async def test_concurrent_misses_may_both_fetch(self, cache):
        calls = []

        async def slow():
            calls.append(1)
            await asyncio.sleep(0.01)
            return len(calls)

        results = await asyncio.gather(
            cache.states.get_or_compute("A", slow),
            cache.states.get_or_compute("A", slow),
        )

        assert len(calls) == 2
        assert set(results) <= {1, 2}
        assert await cache.states.get_or_compute("A", slow) in (1, 2)
        assert len(calls) == 2

    async def test_aggregate_slot_is_separate_from_items(self, cache):
        items = Counter("item")
        everything = Counter("all")

        await cache.screens.get_or_compute("display1", items)
        await cache.screens.get_or_compute_all(everything)
        await cache.screens.get_or_compute_all(everything)

        assert items.calls == 1
        assert everything.calls == 1

    async def test_generic_entry_point_routes_all_key(self, cache):
        fetch = Counter()

        await cache.get_or_compute("displays", ALL_KEY, fetch)
        await cache.displays.get_or_compute_all(fetch)

        assert fetch.calls == 1

    async def test_unknown_namespace_is_rejected(self, cache):
        with pytest.raises(KeyError):
            await cache.get_or_compute("media", "x", Counter())


class TestInvalidation:
    @pytest.mark.parametrize("namespace", ["states", "scenarios", "screens"])
    async def test_specific_key_also_drops_all_sentinel(self, cache, namespace):
        item_fetch = Counter()
        all_fetch = Counter()
        other_fetch = Counter()
        target: CacheNamespace = cache.namespace(namespace)
        await target.get_or_compute("k1", item_fetch)
        await target.get_or_compute("k2", other_fetch)
        await target.get_or_compute_all(all_fetch)

        cache.invalidate(namespace, "k1")

        await target.get_or_compute("k1", item_fetch)
        await target.get_or_compute("k2", other_fetch)
        await target.get_or_compute_all(all_fetch)
        assert item_fetch.calls == 2
        assert all_fetch.calls == 2
        assert other_fetch.calls == 1

    async def test_invalidating_one_namespace_leaves_others(self, cache):
        states = Counter()
        screens = Counter()
        await cache.states.get_or_compute("A", states)
        await cache.screens.get_or_compute("display1", screens)

        cache.invalidate("states")

        await cache.states.get_or_compute("A", states)
        await cache.screens.get_or_compute("display1", screens)
        assert states.calls == 2
        assert screens.calls == 1

    async def test_prefix_invalidation(self, cache):
        await cache.scenarios.get_or_compute("A:s1", Counter())
        await cache.scenarios.get_or_compute("A:s2", Counter())
        await cache.scenarios.get_or_compute("AB:s1", Counter())
        await cache.scenarios.get_or_compute_all(Counter())

        cache.scenarios.invalidate_prefix("A:")

        assert cache.stats()["scenarios"] == 1

    async def test_invalidate_everything(self, cache):
        for name in SignageCache.NAMESPACES:
            await cache.get_or_compute(name, ALL_KEY, Counter())
        await cache.states.get_or_compute("A", Counter())

        cache.invalidate_everything()

        assert cache.stats()["total"] == 0

    async def test_fetch_overlapping_invalidation_is_not_stored(self, cache):
        release = asyncio.Event()
        rows = {"A": "/old.png"}

        async def slow_read():
            value = rows["A"]
            await release.wait()
            return value

        async def read():
            return rows["A"]

        reader = asyncio.create_task(cache.states.get_or_compute_all(slow_read))
        await asyncio.sleep(0)

        rows["A"] = "/new.png"
        cache.invalidate("states", "A")
        assert await cache.states.get_or_compute_all(read) == "/new.png"

        release.set()
        assert await reader == "/old.png"
        assert await cache.states.get_or_compute_all(read) == "/new.png"

    async def test_keyed_fetch_overlapping_prefix_invalidation_is_not_stored(self, cache):
        release = asyncio.Event()
        fetch = Counter()

        async def slow_read():
            await release.wait()
            return "stale"

        reader = asyncio.create_task(cache.scenarios.get_or_compute("A:s1", slow_read))
        await asyncio.sleep(0)
        cache.scenarios.invalidate_prefix("A:")
        release.set()
        await reader

        assert await cache.scenarios.get_or_compute("A:s1", fetch) == "value-1"
        assert fetch.calls == 1


class TestStats:
    async def test_counts_live_entries_per_namespace(self, cache, clock):
        await cache.states.get_or_compute("A", Counter())
        await cache.states.get_or_compute_all(Counter())
        await cache.scenarios.get_or_compute("A:s1", Counter())
        await cache.displays.get_or_compute_all(Counter())

        assert cache.stats() == {"states": 2, "scenarios": 1, "screens": 0, "displays": 1, "total": 4}

        clock.advance(301)
        assert cache.stats()["total"] == 0
