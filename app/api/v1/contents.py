from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_store
from app.db.store import RecommendationStore
from app.models.enums import InteractionType, SimilarityType
from app.schemas.interaction import (
    ContentPopularityStats,
    InteractionOut,
    PopularContentOut,
    SimilarityAnalysisOut,
    SimilarityEdge,
    SimilarityUpdateIn,
)
from app.services.auth import AuthUser, get_current_user, require_role
from app.services.interactions import InteractionService
from app.services.similarity import SimilarityService

router = APIRouter(prefix="/contents", tags=["contents"])

ADMIN_ROLES = {"admin", "administrator"}


@router.get("/popular", response_model=list[PopularContentOut])
async def popular_content(
    limit: int = Query(default=10, ge=1, le=100),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[PopularContentOut]:
    return await InteractionService(store).get_most_popular_content(limit)


@router.get("/{content_id}/popularity", response_model=ContentPopularityStats)
async def content_popularity(
    content_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ContentPopularityStats:
    return await InteractionService(store).get_content_popularity_stats(content_id)


@router.get("/{content_id}/interactions", response_model=list[InteractionOut])
async def content_interactions(
    content_id: int,
    interaction_type: InteractionType = Query(alias="type"),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[InteractionOut]:
    rows = await InteractionService(store).get_content_interactions_by_type(content_id, interaction_type)
    return [InteractionOut.model_validate(r) for r in rows]


@router.post("/{content_id}/similarity", response_model=SimilarityAnalysisOut)
async def analyze_similarity(
    content_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> SimilarityAnalysisOut:
    return await SimilarityService(store).analyze_content_similarity(content_id)


@router.get("/{content_id}/similar", response_model=list[SimilarityEdge])
async def similar_content(
    content_id: int,
    similarity_type: SimilarityType | None = Query(default=None, alias="type"),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[SimilarityEdge]:
    return await SimilarityService(store).get_similar_content(content_id, similarity_type)


@router.put("/similarities/{similarity_id}", response_model=SimilarityEdge)
async def update_similarity(
    similarity_id: int,
    payload: SimilarityUpdateIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> SimilarityEdge:
    require_role(current_user, ADMIN_ROLES)
    return await SimilarityService(store).update_similarity(
        similarity_id,
        payload.similarity_score,
        payload.similarity_type,
    )


@router.delete("/similarities/{similarity_id}", response_model=SimilarityEdge)
async def delete_similarity(
    similarity_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> SimilarityEdge:
    require_role(current_user, ADMIN_ROLES)
    return await SimilarityService(store).delete_similarity(similarity_id)
