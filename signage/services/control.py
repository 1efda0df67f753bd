"""Operator actions that change what screens show.

Every action writes to the store first, then drops the cached state of the
screens it touched, then broadcasts once. If the write raises, nothing is
invalidated or broadcast and the error reaches the caller. A broadcast whose
sends fail does not fail the action; the write already happened.
"""

import json
import logging
from dataclasses import dataclass

from signage.schemas.scenario import ScenarioAssignmentRecord
from signage.schemas.screen_state import ScreenStateRecord, ScreenStateUpdate
from signage.services.cached_reads import CachedReads
from signage.services.realtime import StateBroadcaster
from signage.services.store import SignageStore

logger = logging.getLogger(__name__)


class ControlError(Exception):
    pass


class ScreenNotFound(ControlError, LookupError):
    def __init__(self, screen_id: str) -> None:
        super().__init__(f"Screen not found: {screen_id}")
        self.screen_id = screen_id


class AssignmentNotFound(ControlError, LookupError):
    def __init__(self, screen_id: str, scenario: str) -> None:
        super().__init__(f"Scenario assignment not found for screen {screen_id}: {scenario}")
        self.screen_id = screen_id
        self.scenario = scenario


class PresetNotFound(ControlError, LookupError):
    def __init__(self, preset_id: str) -> None:
        super().__init__(f"Preset not found: {preset_id}")
        self.preset_id = preset_id


class InvalidPresetData(ControlError, ValueError):
    pass


@dataclass
class PresetActivation:
    activated: int = 0
    skipped: int = 0


def parse_preset_scenarios(raw: str) -> dict[str, str]:
    try:
        decoded = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise InvalidPresetData(f"Invalid preset data: {exc.msg}") from exc
    if not isinstance(decoded, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in decoded.items()
    ):
        raise InvalidPresetData("Preset scenarios must map screen ids to scenario names")
    return decoded


class ScreenControl:
    def __init__(self, store: SignageStore, reads: CachedReads, broadcaster: StateBroadcaster) -> None:
        self.store = store
        self.reads = reads
        self.broadcaster = broadcaster

    async def _publish(self, screen_ids: list[str]) -> None:
        for screen_id in screen_ids:
            self.reads.invalidate_state(screen_id)
        await self.broadcaster.broadcast()

    async def _require_screen(self, screen_id: str) -> None:
        if await self.store.get_screen(screen_id) is None:
            raise ScreenNotFound(screen_id)

    async def set_content(self, screen_id: str, image_src: str | None, scenario: str | None = None) -> ScreenStateRecord:
        await self._require_screen(screen_id)
        state = await self.store.upsert_screen_state(screen_id, image_src, scenario or None)
        await self._publish([screen_id])
        return state

    async def turn_off(self, screen_id: str) -> ScreenStateRecord:
        await self._require_screen(screen_id)
        state = await self.store.upsert_screen_state(screen_id, None, None)
        await self._publish([screen_id])
        return state

    async def trigger_scenario(self, screen_id: str, scenario_name: str) -> ScreenStateRecord:
        # Read the store directly: the write must use the assignment as it is now.
        assignment = await self.store.get_scenario_assignment(screen_id, scenario_name)
        if assignment is None:
            raise AssignmentNotFound(screen_id, scenario_name)
        state = await self.store.upsert_screen_state(screen_id, assignment.image_path, scenario_name)
        await self._publish([screen_id])
        return state

    async def trigger_preset(self, preset_id: str) -> PresetActivation:
        preset = await self.store.get_preset(preset_id)
        if preset is None:
            raise PresetNotFound(preset_id)
        scenarios = parse_preset_scenarios(preset.scenarios)

        result = PresetActivation()
        updates: list[ScreenStateUpdate] = []
        for screen_id, scenario_name in scenarios.items():
            assignment = await self.store.get_scenario_assignment(screen_id, scenario_name)
            if assignment is None:
                logger.info("Preset %s: no assignment for %s/%s, skipped", preset_id, screen_id, scenario_name)
                result.skipped += 1
                continue
            updates.append(ScreenStateUpdate(screen_id=screen_id, image_src=assignment.image_path, scenario=scenario_name))

        if updates:
            await self.store.upsert_screen_states(updates)
            result.activated = len(updates)
            await self._publish([update.screen_id for update in updates])
        return result

    async def upsert_assignment(
        self,
        screen_id: str,
        scenario: str,
        image_path: str,
        interval_ms: int | None = None,
        images: list[str] | None = None,
    ) -> ScenarioAssignmentRecord:
        await self._require_screen(screen_id)
        assignment = await self.store.upsert_scenario_assignment(screen_id, scenario, image_path, interval_ms, images)
        self.reads.invalidate_scenario(screen_id, scenario)
        await self.broadcaster.broadcast()
        return assignment
