from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import RecommendationReason, RecommendationStatus


class RecommendationFilter(BaseModel):
    status: RecommendationStatus | None = None
    reason: RecommendationReason | None = None
    min_score: float | None = None
    content_type: str | None = None
    category_id: int | None = None
    tag_id: int | None = None
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class RecommendationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    content_id: int
    score: float
    reason: RecommendationReason
    status: RecommendationStatus
    notes: str | None = None
    clicked_at: datetime | None = None
    dismissed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    content_title: str | None = None
    content_type: str | None = None
    content_description: str | None = None


class RecommendationListOut(BaseModel):
    recommendations: list[RecommendationOut]
    count: int


class GenerateRecommendationsIn(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)


class GenerateRecommendationsOut(BaseModel):
    triggered: bool
    recommendations: list[RecommendationOut]


class RecommendationStatusIn(BaseModel):
    status: RecommendationStatus
    notes: str | None = Field(default=None, max_length=2000)


class RecommendationFeedbackIn(BaseModel):
    is_relevant: bool
    feedback_text: str | None = Field(default=None, max_length=4000)


class RecommendationFeedbackOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    recommendation_id: int
    is_relevant: bool
    feedback_text: str | None = None
    created_at: datetime


class ReasonEffectiveness(BaseModel):
    reason: RecommendationReason
    total: int
    click_rate: float
    dismiss_rate: float
    mean_relevance: float | None = None
