from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from signage.models.display import Display
from signage.models.scenario import ScenarioAssignment
from signage.models.screen import Screen
from signage.models.screen_state import ScreenState
from signage.schemas.screen import ScreenRecord
from signage.services.control import ScreenControl

router = APIRouter(prefix="/api/screens", tags=["screens"])

MAX_SCREEN_SIZE = 8192


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_control(request: Request) -> ScreenControl:
    return request.app.state.control


def _validate_geometry(width: int, height: int) -> None:
    if width < 1 or height < 1 or width > MAX_SCREEN_SIZE or height > MAX_SCREEN_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid screen size. Width and height must be within 1..{MAX_SCREEN_SIZE}.",
        )


@router.post("")
async def create_screen(
    screen_id: str,
    display_id: str,
    name: str | None = None,
    x: int = 0,
    y: int = 0,
    width: int = 512,
    height: int = 512,
    db: Session = Depends(get_db),
    control: ScreenControl = Depends(get_control),
):
    if not db.get(Display, display_id):
        raise HTTPException(status_code=404, detail="Display not found")
    if db.get(Screen, screen_id):
        raise HTTPException(status_code=409, detail="Screen already exists")
    _validate_geometry(width, height)
    screen = Screen(id=screen_id, display_id=display_id, name=name, x=x, y=y, width=width, height=height)
    db.add(screen)
    db.commit()
    db.refresh(screen)

    control.reads.invalidate_screens(display_id)
    control.reads.invalidate_displays()
    return ScreenRecord.model_validate(screen)


@router.put("/{screen_id}")
async def update_screen(
    screen_id: str,
    name: str | None = None,
    display_id: str | None = None,
    x: int | None = None,
    y: int | None = None,
    width: int | None = None,
    height: int | None = None,
    db: Session = Depends(get_db),
    control: ScreenControl = Depends(get_control),
):
    screen = db.get(Screen, screen_id)
    if not screen:
        raise HTTPException(status_code=404, detail="Screen not found")
    previous_display = screen.display_id
    if display_id is not None:
        if not db.get(Display, display_id):
            raise HTTPException(status_code=404, detail="Display not found")
        screen.display_id = display_id
    if name is not None:
        screen.name = name
    if x is not None:
        screen.x = x
    if y is not None:
        screen.y = y
    if width is not None or height is not None:
        _validate_geometry(width if width is not None else screen.width, height if height is not None else screen.height)
        screen.width = width if width is not None else screen.width
        screen.height = height if height is not None else screen.height
    db.commit()
    db.refresh(screen)

    control.reads.invalidate_screens(previous_display)
    if screen.display_id != previous_display:
        control.reads.invalidate_screens(screen.display_id)
        control.reads.invalidate_displays()
    return ScreenRecord.model_validate(screen)


@router.delete("/{screen_id}")
async def delete_screen(
    screen_id: str,
    db: Session = Depends(get_db),
    control: ScreenControl = Depends(get_control),
):
    screen = db.get(Screen, screen_id)
    if not screen:
        raise HTTPException(status_code=404, detail="Screen not found")
    display_id = screen.display_id
    db.query(ScreenState).filter(ScreenState.screen_id == screen_id).delete(synchronize_session=False)
    for assignment in db.query(ScenarioAssignment).filter(ScenarioAssignment.screen_id == screen_id).all():
        db.delete(assignment)
    db.flush()
    db.delete(screen)
    db.commit()

    reads = control.reads
    reads.invalidate_state(screen_id)
    reads.invalidate_scenario(screen_id)
    reads.invalidate_screens(display_id)
    reads.invalidate_displays()
    await control.broadcaster.broadcast()
    return {"ok": True}
