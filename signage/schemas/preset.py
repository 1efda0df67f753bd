from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field


class PresetRecord(BaseModel):
    id: str
    name: str
    scenarios: str  # raw JSON text, decoded by the control service
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def _clean_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must be a non-empty string")
    return value


PresetName = Annotated[str, AfterValidator(_clean_name)]


class PresetIn(BaseModel):
    name: PresetName
    scenarios: dict[str, str]  # screen_id -> scenario name


class PresetUpdateIn(BaseModel):
    name: PresetName | None = None
    scenarios: dict[str, str] | None = None


class PresetTriggerIn(BaseModel):
    presetId: str = Field(..., min_length=1)
