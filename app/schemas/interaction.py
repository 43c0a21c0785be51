from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import InteractionType, SimilarityType


class InteractionDetails(BaseModel):
    duration_seconds: int | None = Field(default=None, ge=0)
    completion_percentage: int | None = None
    rating: int | None = None


class InteractionIn(InteractionDetails):
    content_id: int
    interaction_type: InteractionType


class InteractionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    content_id: int
    interaction_type: InteractionType
    duration_seconds: int | None = None
    completion_percentage: int | None = None
    rating: int | None = None
    bookmarked: bool = False
    created_at: datetime


class BookmarkToggleOut(BaseModel):
    bookmarked: bool
    interaction: InteractionOut


class RatingIn(BaseModel):
    rating: int


class ContentPopularityStats(BaseModel):
    content_id: int
    view_count: int = 0
    download_count: int = 0
    bookmark_count: int = 0
    share_count: int = 0
    average_rating: float = 0.0
    total_interactions: int = 0


class PopularContentOut(BaseModel):
    content_id: int
    title: str
    content_type: str
    interaction_count: int


class SimilarityEdge(BaseModel):
    id: int
    content_id_a: int
    content_id_b: int
    related_content_id: int
    similarity_score: float
    similarity_type: SimilarityType
    updated_at: datetime


class SimilarityAnalysisOut(BaseModel):
    content_id: int
    content_based: list[SimilarityEdge] = Field(default_factory=list)
    tag_based: list[SimilarityEdge] = Field(default_factory=list)
    collaborative: list[SimilarityEdge] = Field(default_factory=list)


class SimilarityUpdateIn(BaseModel):
    similarity_score: float
    similarity_type: SimilarityType | None = None
