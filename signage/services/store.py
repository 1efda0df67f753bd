"""Durable store for screens, screen state, scenarios and presets.

Every public method is a coroutine. The queries themselves use plain
SQLAlchemy sessions and run in Starlette's threadpool so the event loop is
never blocked by the database. Records come back as frozen pydantic models,
detached from the session that loaded them.

Storage errors are not interpreted here; they propagate to the caller.
"""

import json
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from signage.models.display import Display
from signage.models.preset import Preset
from signage.models.scenario import Scenario, ScenarioAssignment, ScenarioImage
from signage.models.screen import Screen
from signage.models.screen_state import ScreenState
from signage.schemas.preset import PresetRecord
from signage.schemas.scenario import ScenarioAssignmentRecord, ScenarioOut
from signage.schemas.screen import DisplayRecord, ScreenRecord
from signage.schemas.screen_state import ScreenStateRecord, ScreenStateUpdate


def _touch(previous: datetime | None) -> datetime:
    now = datetime.utcnow()
    if previous is not None and previous > now:
        return previous
    return now


def _upsert_state(db: Session, update: ScreenStateUpdate) -> ScreenState:
    state = db.get(ScreenState, update.screen_id)
    if state is None:
        state = ScreenState(screen_id=update.screen_id)
        db.add(state)
    state.image_src = update.image_src
    state.scenario = update.scenario
    state.updated_at = _touch(state.updated_at)
    return state


class SignageStore:
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def _run(self, fn, *args):
        return await run_in_threadpool(self._call, fn, *args)

    def _call(self, fn, *args):
        db = self._session_factory()
        try:
            return fn(db, *args)
        finally:
            db.close()

    # Screen state

    async def list_screen_states(self) -> list[ScreenStateRecord]:
        return await self._run(self._list_screen_states)

    async def get_screen_state(self, screen_id: str) -> ScreenStateRecord | None:
        return await self._run(self._get_screen_state, screen_id)

    async def upsert_screen_state(
        self, screen_id: str, image_src: str | None, scenario: str | None = None
    ) -> ScreenStateRecord:
        update = ScreenStateUpdate(screen_id=screen_id, image_src=image_src, scenario=scenario)
        records = await self._run(self._upsert_screen_states, [update])
        return records[0]

    async def upsert_screen_states(self, updates: list[ScreenStateUpdate]) -> list[ScreenStateRecord]:
        """Apply every update in one transaction; nothing is written if any fails."""
        return await self._run(self._upsert_screen_states, list(updates))

    # Scenarios

    async def get_scenario_assignment(self, screen_id: str, scenario: str) -> ScenarioAssignmentRecord | None:
        return await self._run(self._get_scenario_assignment, screen_id, scenario)

    async def list_scenario_assignments(self, screen_id: str | None = None) -> list[ScenarioAssignmentRecord]:
        return await self._run(self._list_scenario_assignments, screen_id)

    async def upsert_scenario_assignment(
        self,
        screen_id: str,
        scenario: str,
        image_path: str,
        interval_ms: int | None = None,
        images: list[str] | None = None,
    ) -> ScenarioAssignmentRecord:
        return await self._run(
            self._upsert_scenario_assignment, screen_id, scenario, image_path, interval_ms, list(images or [])
        )

    async def list_scenarios(self) -> list[ScenarioOut]:
        return await self._run(self._list_scenarios)

    # Screens and displays

    async def get_screen(self, screen_id: str) -> ScreenRecord | None:
        return await self._run(self._get_screen, screen_id)

    async def list_screens(self, display_id: str | None = None) -> list[ScreenRecord]:
        return await self._run(self._list_screens, display_id)

    async def list_displays(self) -> list[DisplayRecord]:
        return await self._run(self._list_displays)

    # Presets

    async def get_preset(self, preset_id: str) -> PresetRecord | None:
        return await self._run(self._get_preset, preset_id)

    async def list_presets(self) -> list[PresetRecord]:
        return await self._run(self._list_presets)

    async def create_preset(self, name: str, scenarios: dict[str, str]) -> PresetRecord:
        return await self._run(self._create_preset, name, json.dumps(scenarios))

    async def update_preset(
        self, preset_id: str, name: str | None = None, scenarios: dict[str, str] | None = None
    ) -> PresetRecord | None:
        """Change the given fields; returns None when the preset does not exist."""
        encoded = json.dumps(scenarios) if scenarios is not None else None
        return await self._run(self._update_preset, preset_id, name, encoded)

    async def delete_preset(self, preset_id: str) -> bool:
        return await self._run(self._delete_preset, preset_id)

    # Sync implementations, executed inside the threadpool.

    @staticmethod
    def _list_screen_states(db: Session) -> list[ScreenStateRecord]:
        rows = db.query(ScreenState).order_by(ScreenState.screen_id.asc()).all()
        return [ScreenStateRecord.model_validate(row) for row in rows]

    @staticmethod
    def _get_screen_state(db: Session, screen_id: str) -> ScreenStateRecord | None:
        row = db.get(ScreenState, screen_id)
        return ScreenStateRecord.model_validate(row) if row else None

    @staticmethod
    def _upsert_screen_states(db: Session, updates: list[ScreenStateUpdate]) -> list[ScreenStateRecord]:
        try:
            states = [_upsert_state(db, update) for update in updates]
            db.commit()
        except Exception:
            db.rollback()
            raise
        return [ScreenStateRecord.model_validate(state) for state in states]

    @staticmethod
    def _get_scenario_assignment(db: Session, screen_id: str, scenario: str) -> ScenarioAssignmentRecord | None:
        row = (
            db.query(ScenarioAssignment)
            .filter(ScenarioAssignment.screen_id == screen_id, ScenarioAssignment.scenario == scenario)
            .first()
        )
        return ScenarioAssignmentRecord.model_validate(row) if row else None

    @staticmethod
    def _list_scenario_assignments(db: Session, screen_id: str | None) -> list[ScenarioAssignmentRecord]:
        query = db.query(ScenarioAssignment)
        if screen_id is not None:
            query = query.filter(ScenarioAssignment.screen_id == screen_id)
        rows = query.order_by(ScenarioAssignment.screen_id.asc(), ScenarioAssignment.scenario.asc()).all()
        return [ScenarioAssignmentRecord.model_validate(row) for row in rows]

    @staticmethod
    def _upsert_scenario_assignment(
        db: Session,
        screen_id: str,
        scenario: str,
        image_path: str,
        interval_ms: int | None,
        images: list[str],
    ) -> ScenarioAssignmentRecord:
        try:
            row = (
                db.query(ScenarioAssignment)
                .filter(ScenarioAssignment.screen_id == screen_id, ScenarioAssignment.scenario == scenario)
                .first()
            )
            if row is None:
                row = ScenarioAssignment(screen_id=screen_id, scenario=scenario)
                db.add(row)
            row.image_path = image_path
            row.interval_ms = interval_ms if interval_ms and interval_ms > 0 else None
            row.images = [ScenarioImage(image_path=path, order=index) for index, path in enumerate(images)]
            db.commit()
            db.refresh(row)
        except Exception:
            db.rollback()
            raise
        return ScenarioAssignmentRecord.model_validate(row)

    @staticmethod
    def _list_scenarios(db: Session) -> list[ScenarioOut]:
        rows = db.query(Scenario).order_by(Scenario.display_order.asc()).all()
        return [ScenarioOut.model_validate(row) for row in rows]

    @staticmethod
    def _get_screen(db: Session, screen_id: str) -> ScreenRecord | None:
        row = db.get(Screen, screen_id)
        return ScreenRecord.model_validate(row) if row else None

    @staticmethod
    def _list_screens(db: Session, display_id: str | None) -> list[ScreenRecord]:
        query = db.query(Screen)
        if display_id is not None:
            query = query.filter(Screen.display_id == display_id)
        return [ScreenRecord.model_validate(row) for row in query.order_by(Screen.id.asc()).all()]

    @staticmethod
    def _list_displays(db: Session) -> list[DisplayRecord]:
        rows = (
            db.query(Display, func.count(Screen.id))
            .outerjoin(Screen, Screen.display_id == Display.id)
            .group_by(Display.id)
            .order_by(Display.id.asc())
            .all()
        )
        return [DisplayRecord(id=display.id, name=display.name, screen_count=count) for display, count in rows]

    @staticmethod
    def _get_preset(db: Session, preset_id: str) -> PresetRecord | None:
        row = db.get(Preset, preset_id)
        return PresetRecord.model_validate(row) if row else None

    @staticmethod
    def _list_presets(db: Session) -> list[PresetRecord]:
        rows = db.query(Preset).order_by(Preset.created_at.asc()).all()
        return [PresetRecord.model_validate(row) for row in rows]

    @staticmethod
    def _create_preset(db: Session, name: str, scenarios: str) -> PresetRecord:
        row = Preset(name=name, scenarios=scenarios)
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
        except Exception:
            db.rollback()
            raise
        return PresetRecord.model_validate(row)

    @staticmethod
    def _update_preset(db: Session, preset_id: str, name: str | None, scenarios: str | None) -> PresetRecord | None:
        row = db.get(Preset, preset_id)
        if row is None:
            return None
        if name is not None:
            row.name = name
        if scenarios is not None:
            row.scenarios = scenarios
        try:
            db.commit()
            db.refresh(row)
        except Exception:
            db.rollback()
            raise
        return PresetRecord.model_validate(row)

    @staticmethod
    def _delete_preset(db: Session, preset_id: str) -> bool:
        row = db.get(Preset, preset_id)
        if row is None:
            return False
        try:
            db.delete(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return True
