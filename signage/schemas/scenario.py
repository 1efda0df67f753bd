from pydantic import BaseModel, Field, field_validator


class ScenarioAssignmentRecord(BaseModel):
    screen_id: str
    scenario: str
    image_path: str
    interval_ms: int | None = None
    images: list[str] = []

    class Config:
        from_attributes = True
        frozen = True

    @field_validator("images", mode="before")
    @classmethod
    def _image_paths(cls, value):
        # ORM rows carry ScenarioImage objects, already ordered by the relationship.
        return [getattr(item, "image_path", item) for item in value or []]


class ScenarioOut(BaseModel):
    id: str
    name: str
    display_order: int

    class Config:
        from_attributes = True


class AssignmentIn(BaseModel):
    image_path: str = Field(..., min_length=1)
    interval_ms: int | None = None
    images: list[str] = []


class ScenarioTriggerIn(BaseModel):
    screenId: str = Field(..., min_length=1)
    scenarioName: str = Field(..., min_length=1)
