import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from signage.schemas.preset import PresetIn, PresetRecord, PresetTriggerIn, PresetUpdateIn
from signage.schemas.scenario import AssignmentIn, ScenarioAssignmentRecord, ScenarioTriggerIn
from signage.schemas.screen import ScreenContentIn
from signage.services.cached_reads import CachedReads
from signage.services.control import ControlError, InvalidPresetData, ScreenControl, parse_preset_scenarios
from signage.services.screen_state import build_screen_state_map, state_message
from signage.services.store import SignageStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["control"])


def get_reads(request: Request) -> CachedReads:
    return request.app.state.reads


def get_control(request: Request) -> ScreenControl:
    return request.app.state.control


def get_store(request: Request) -> SignageStore:
    return request.app.state.store


def _control_http_error(exc: ControlError) -> HTTPException:
    if isinstance(exc, InvalidPresetData):
        logger.error("Invalid preset data: %s", exc)
        return HTTPException(status_code=500, detail="Invalid preset data")
    return HTTPException(status_code=404, detail=str(exc))


@router.get("/displays")
async def list_displays(reads: CachedReads = Depends(get_reads)):
    return await reads.displays()


@router.get("/screens")
async def list_screens(display_id: str | None = None, reads: CachedReads = Depends(get_reads)):
    if display_id:
        return await reads.screens(display_id)
    return await reads.all_screens()


@router.get("/scenarios")
async def list_scenarios(configured: bool = False, reads: CachedReads = Depends(get_reads)):
    scenarios = await reads.store.list_scenarios()
    assigned: dict[str, list[str]] = {}
    for assignment in await reads.all_scenario_assignments():
        assigned.setdefault(assignment.scenario, []).append(assignment.screen_id)

    output = [
        {
            "id": scenario.id,
            "name": scenario.name,
            "hasAssignments": scenario.name in assigned,
            "assignedScreenIds": assigned.get(scenario.name, []),
        }
        for scenario in scenarios
    ]
    if configured:
        return [row for row in output if row["hasAssignments"]]
    return output


def _preset_out(preset: PresetRecord) -> dict:
    try:
        scenarios = parse_preset_scenarios(preset.scenarios)
    except InvalidPresetData:
        logger.warning("Preset %s has invalid scenario data, listed without scenarios", preset.id)
        scenarios = {}
    return {"id": preset.id, "name": preset.name, "scenarios": scenarios}


def _assignment_out(row: ScenarioAssignmentRecord) -> dict:
    slideshow = row.interval_ms is not None and len(row.images) > 1
    return {
        "screenId": row.screen_id,
        "scenario": row.scenario,
        "contentType": "slideshow" if slideshow else "still_image",
        "imagePath": row.image_path,
        "intervalMs": row.interval_ms,
        "images": row.images,
    }


@router.get("/presets")
async def list_presets(store: SignageStore = Depends(get_store)):
    return [_preset_out(preset) for preset in await store.list_presets()]


@router.post("/presets", status_code=201)
async def create_preset(body: PresetIn, store: SignageStore = Depends(get_store)):
    preset = await store.create_preset(body.name, body.scenarios)
    logger.info("Preset %s created (%s)", preset.id, preset.name)
    return _preset_out(preset)


@router.put("/presets/{preset_id}")
async def update_preset(preset_id: str, body: PresetUpdateIn, store: SignageStore = Depends(get_store)):
    preset = await store.update_preset(preset_id, body.name, body.scenarios)
    if preset is None:
        raise HTTPException(status_code=404, detail="Preset not found")
    return _preset_out(preset)


@router.delete("/presets/{preset_id}")
async def delete_preset(preset_id: str, store: SignageStore = Depends(get_store)):
    if not await store.delete_preset(preset_id):
        raise HTTPException(status_code=404, detail="Preset not found")
    return {"success": True}


@router.get("/assignments")
async def list_assignments(reads: CachedReads = Depends(get_reads)):
    return [_assignment_out(row) for row in await reads.all_scenario_assignments()]


@router.get("/screens/{screen_id}/assignments")
async def list_screen_assignments(screen_id: str, store: SignageStore = Depends(get_store)):
    if await store.get_screen(screen_id) is None:
        raise HTTPException(status_code=404, detail="Screen not found")
    return [_assignment_out(row) for row in await store.list_scenario_assignments(screen_id)]


@router.put("/screens/{screen_id}/assignments/{scenario}")
async def upsert_screen_assignment(
    screen_id: str,
    scenario: str,
    body: AssignmentIn,
    control: ScreenControl = Depends(get_control),
):
    try:
        assignment = await control.upsert_assignment(
            screen_id, scenario, body.image_path, body.interval_ms, body.images
        )
    except ControlError as exc:
        raise _control_http_error(exc) from exc
    return assignment


@router.post("/screens/{screen_id}/content")
async def set_screen_content(screen_id: str, body: ScreenContentIn, control: ScreenControl = Depends(get_control)):
    try:
        await control.set_content(screen_id, body.imageSrc, body.scenario)
    except ControlError as exc:
        raise _control_http_error(exc) from exc
    return {"success": True}


@router.post("/screens/{screen_id}/off")
async def turn_screen_off(screen_id: str, control: ScreenControl = Depends(get_control)):
    try:
        await control.turn_off(screen_id)
    except ControlError as exc:
        raise _control_http_error(exc) from exc
    return {"success": True}


@router.post("/scenarios/trigger")
async def trigger_scenario(body: ScenarioTriggerIn, control: ScreenControl = Depends(get_control)):
    try:
        await control.trigger_scenario(body.screenId, body.scenarioName)
    except ControlError as exc:
        raise _control_http_error(exc) from exc
    return {"success": True}


@router.post("/presets/trigger")
async def trigger_preset(body: PresetTriggerIn, control: ScreenControl = Depends(get_control)):
    try:
        result = await control.trigger_preset(body.presetId)
    except ControlError as exc:
        raise _control_http_error(exc) from exc
    return {"success": True, "activated": result.activated, "skipped": result.skipped}


@router.get("/state")
async def current_state(reads: CachedReads = Depends(get_reads)):
    return state_message(await build_screen_state_map(reads))


@router.get("/cache/stats")
def cache_stats(reads: CachedReads = Depends(get_reads)):
    return reads.cache.stats()
