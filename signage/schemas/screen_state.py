from datetime import datetime
from pydantic import BaseModel


class ScreenStateRecord(BaseModel):
    screen_id: str
    image_src: str | None = None
    scenario: str | None = None
    updated_at: datetime

    class Config:
        from_attributes = True
        frozen = True


class SlideshowOut(BaseModel):
    images: list[str]
    intervalMs: int


class ScreenStateEntry(BaseModel):
    src: str | None = None
    scenario: str | None = None
    updated: str
    slideshow: SlideshowOut | None = None


class ScreenStateUpdate(BaseModel):
    screen_id: str
    image_src: str | None = None
    scenario: str | None = None
