from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

PET_NAME_MAX_LENGTH = 120
USER_ID_MAX_LENGTH = 128


class DeliveryErrorKind(str, Enum):
    INVALID_TOKEN = "invalid_token"
    TRANSIENT_ERROR = "transient_error"


class TokenOutcome(str, Enum):
    DELIVERED = "delivered"
    INVALID_TOKEN = "invalid_token"
    TRANSIENT_ERROR = "transient_error"


class Post(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str
    pet_name: str | None = Field(default=None, alias="petName", max_length=PET_NAME_MAX_LENGTH)
    created_at: datetime | None = Field(default=None, alias="createdAt")


class TokenRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    user_id: str
    token: str
    updated_at: datetime


class DeviceRegistration(BaseModel):
    token: str = Field(min_length=1, max_length=512)


class NotificationPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    click_action: str
    data: dict[str, str] = Field(default_factory=dict)


class DeliveryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    success: bool
    error_kind: DeliveryErrorKind | None = None
    user_id: str | None = None


class DispatchSummary(BaseModel):
    post_id: str | None = None
    attempted: int = 0
    delivered: int = 0
    invalid: int = 0
    transient: int = 0
    batches: int = 0
    pruned: int = 0
    results: list[DeliveryResult] = Field(default_factory=list)
