from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from src.models.notification import PET_NAME_MAX_LENGTH


class PostCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pet_name: str | None = Field(default=None, alias="petName", max_length=PET_NAME_MAX_LENGTH)


class DeviceRemovalResponse(BaseModel):
    user_id: str
    removed: bool


class HealthResponse(BaseModel):
    status: str
    provider: str
