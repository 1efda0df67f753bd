from functools import partial

from signage.schemas.scenario import ScenarioAssignmentRecord
from signage.schemas.screen import DisplayRecord, ScreenRecord
from signage.schemas.screen_state import ScreenStateRecord
from signage.services.cache import SignageCache
from signage.services.store import SignageStore


def scenario_key(screen_id: str, scenario: str) -> str:
    return f"{screen_id}:{scenario}"


class CachedReads:
    """Read-through accessors over the store, plus the cache invalidation entry points.

    Store errors propagate untouched and never populate the cache.
    """

    def __init__(self, cache: SignageCache, store: SignageStore) -> None:
        self.cache = cache
        self.store = store

    async def screen_state(self, screen_id: str) -> ScreenStateRecord | None:
        return await self.cache.states.get_or_compute(screen_id, partial(self.store.get_screen_state, screen_id))

    async def all_screen_states(self) -> list[ScreenStateRecord]:
        return await self.cache.states.get_or_compute_all(self.store.list_screen_states)

    async def scenario_assignment(self, screen_id: str, scenario: str) -> ScenarioAssignmentRecord | None:
        return await self.cache.scenarios.get_or_compute(
            scenario_key(screen_id, scenario),
            partial(self.store.get_scenario_assignment, screen_id, scenario),
        )

    async def all_scenario_assignments(self) -> list[ScenarioAssignmentRecord]:
        return await self.cache.scenarios.get_or_compute_all(self.store.list_scenario_assignments)

    async def screens(self, display_id: str) -> list[ScreenRecord]:
        return await self.cache.screens.get_or_compute(display_id, partial(self.store.list_screens, display_id))

    async def all_screens(self) -> list[ScreenRecord]:
        return await self.cache.screens.get_or_compute_all(self.store.list_screens)

    async def displays(self) -> list[DisplayRecord]:
        return await self.cache.displays.get_or_compute_all(self.store.list_displays)

    def invalidate_state(self, screen_id: str | None = None) -> None:
        self.cache.states.invalidate(screen_id)

    def invalidate_scenario(self, screen_id: str | None = None, scenario: str | None = None) -> None:
        if screen_id and scenario:
            self.cache.scenarios.invalidate(scenario_key(screen_id, scenario))
        elif screen_id:
            self.cache.scenarios.invalidate_prefix(f"{screen_id}:")
        else:
            self.cache.scenarios.invalidate()

    def invalidate_screens(self, display_id: str | None = None) -> None:
        self.cache.screens.invalidate(display_id)

    def invalidate_displays(self) -> None:
        self.cache.displays.invalidate()

    def invalidate_everything(self) -> None:
        self.cache.invalidate_everything()
