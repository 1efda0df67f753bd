import json
from datetime import datetime, timezone

from signage.schemas.screen_state import ScreenStateEntry, SlideshowOut
from signage.services.cached_reads import CachedReads

ScreenStateMap = dict[str, ScreenStateEntry]


def format_timestamp(value: datetime) -> str:
    # Stored datetimes are naive UTC; clients expect the `...T00:00:00.000Z` form.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def build_screen_state_map(reads: CachedReads) -> ScreenStateMap:
    """Join every screen state with its scenario assignment.

    A state whose scenario has no assignment (for example one deleted after
    activation) is still reported, just without a slideshow.
    """
    states = await reads.all_screen_states() or []
    state_map: ScreenStateMap = {}

    for state in states:
        slideshow = None
        if state.scenario:
            assignment = await reads.scenario_assignment(state.screen_id, state.scenario)
            if assignment and assignment.interval_ms and len(assignment.images) > 0:
                slideshow = SlideshowOut(images=list(assignment.images), intervalMs=assignment.interval_ms)

        state_map[state.screen_id] = ScreenStateEntry(
            src=state.image_src,
            scenario=state.scenario,
            updated=format_timestamp(state.updated_at),
            slideshow=slideshow,
        )

    return state_map


def entry_payload(entry: ScreenStateEntry) -> dict:
    payload = entry.model_dump()
    if payload["slideshow"] is None:
        del payload["slideshow"]
    return payload


def state_message(state_map: ScreenStateMap) -> dict:
    return {
        "type": "state",
        "screens": {screen_id: entry_payload(entry) for screen_id, entry in state_map.items()},
    }


def encode_state_message(state_map: ScreenStateMap) -> str:
    return json.dumps(state_message(state_map))
