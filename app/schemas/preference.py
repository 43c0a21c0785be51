from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserPreferenceIn(BaseModel):
    category_id: int | None = None
    tag_id: int | None = None
    content_type: str | None = Field(default=None, min_length=1, max_length=50)
    weight: float = Field(default=1.0, ge=0)


class UserPreferenceUpdate(BaseModel):
    category_id: int | None = None
    tag_id: int | None = None
    content_type: str | None = Field(default=None, min_length=1, max_length=50)
    weight: float | None = Field(default=None, ge=0)


class UserPreferenceBulkItem(UserPreferenceUpdate):
    id: int


class PreferenceIncrementIn(BaseModel):
    increment_by: float = 0.1


class UserPreferenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    category_id: int | None = None
    tag_id: int | None = None
    content_type: str | None = None
    weight: float
    created_at: datetime
    updated_at: datetime


class PreferenceBucket(BaseModel):
    key: int | str
    count: int
    total_weight: float


class PreferenceAnalyticsOut(BaseModel):
    category_preferences: list[PreferenceBucket]
    tag_preferences: list[PreferenceBucket]
    content_type_preferences: list[PreferenceBucket]
    total: int
