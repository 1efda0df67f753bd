from pydantic import BaseModel


class ScreenRecord(BaseModel):
    id: str
    display_id: str
    name: str | None = None
    x: int
    y: int
    width: int
    height: int
    lat: float | None = None
    lng: float | None = None
    address: str | None = None

    class Config:
        from_attributes = True
        frozen = True


class DisplayRecord(BaseModel):
    id: str
    name: str
    screen_count: int = 0

    class Config:
        from_attributes = True
        frozen = True


class ScreenContentIn(BaseModel):
    imageSrc: str
    scenario: str | None = None
