"""In-memory TTL cache for screen state, scenario assignments, screens and displays.

The cache is split into independent namespaces. Each namespace holds keyed
items plus one aggregate slot (the ``"all"`` sentinel) that is derived from
the same rows, so dropping any keyed item also drops the aggregate.

There is no eviction beyond TTL expiry and no single-flight on misses: two
callers that miss the same key concurrently will both fetch, and the last
one to finish wins. Fetches are plain reads, so this only costs a query.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = float(os.getenv("SIGNAGE_CACHE_TTL_SEC", "300"))
ALL_KEY = "all"

T = TypeVar("T")
ItemT = TypeVar("ItemT")
AllT = TypeVar("AllT")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp <= self.ttl


class CacheNamespace(Generic[ItemT, AllT]):
    def __init__(
        self,
        name: str,
        ttl: float = DEFAULT_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self._clock = clock
        self._items: dict[str, CacheEntry[ItemT]] = {}
        self._all: CacheEntry[AllT] | None = None
        # Bumped on every invalidation; a fetch that started under an older
        # generation returns its result but does not store it.
        self._generation = 0

    async def get_or_compute(
        self,
        key: str,
        fetch: Callable[[], Awaitable[ItemT]],
        ttl: float | None = None,
    ) -> ItemT:
        cached = self._items.get(key)
        if cached is not None and cached.is_valid(self._clock()):
            return cached.data

        generation = self._generation
        data = await fetch()
        if generation == self._generation:
            self._items[key] = CacheEntry(data=data, timestamp=self._clock(), ttl=self.ttl if ttl is None else ttl)
        return data

    async def get_or_compute_all(
        self,
        fetch: Callable[[], Awaitable[AllT]],
        ttl: float | None = None,
    ) -> AllT:
        cached = self._all
        if cached is not None and cached.is_valid(self._clock()):
            return cached.data

        generation = self._generation
        data = await fetch()
        if generation == self._generation:
            self._all = CacheEntry(data=data, timestamp=self._clock(), ttl=self.ttl if ttl is None else ttl)
        return data

    def invalidate(self, key: str | None = None) -> None:
        """Drop ``key`` and the aggregate slot, or everything when no key is given."""
        self._generation += 1
        if key is None:
            self._items.clear()
        elif key != ALL_KEY:
            self._items.pop(key, None)
        self._all = None

    def invalidate_prefix(self, prefix: str) -> None:
        self._generation += 1
        for key in [key for key in self._items if key.startswith(prefix)]:
            del self._items[key]
        self._all = None

    def live_count(self) -> int:
        now = self._clock()
        count = sum(1 for entry in self._items.values() if entry.is_valid(now))
        if self._all is not None and self._all.is_valid(now):
            count += 1
        return count


class SignageCache:
    """The four cache namespaces used by the signage service.

    One instance is created per application and handed to every component
    that reads through it or invalidates it.
    """

    NAMESPACES = ("states", "scenarios", "screens", "displays")

    def __init__(self, ttl: float = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.monotonic) -> None:
        self.states = CacheNamespace("states", ttl, clock)
        self.scenarios = CacheNamespace("scenarios", ttl, clock)
        self.screens = CacheNamespace("screens", ttl, clock)
        # Displays only ever use the aggregate slot.
        self.displays = CacheNamespace("displays", ttl, clock)

    def namespace(self, name: str) -> CacheNamespace:
        if name not in self.NAMESPACES:
            raise KeyError(f"Unknown cache namespace: {name}")
        return getattr(self, name)

    async def get_or_compute(self, namespace: str, key: str, fetch, ttl: float | None = None):
        target = self.namespace(namespace)
        if key == ALL_KEY:
            return await target.get_or_compute_all(fetch, ttl)
        return await target.get_or_compute(key, fetch, ttl)

    def invalidate(self, namespace: str, key: str | None = None) -> None:
        self.namespace(namespace).invalidate(key)

    def invalidate_everything(self) -> None:
        for name in self.NAMESPACES:
            self.namespace(name).invalidate()
        logger.debug("Cache cleared")

    def stats(self) -> dict[str, int]:
        counts = {name: self.namespace(name).live_count() for name in self.NAMESPACES}
        counts["total"] = sum(counts.values())
        return counts
