from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_store
from app.db.store import RecommendationStore
from app.models.enums import RecommendationReason, RecommendationStatus
from app.schemas.common import MessageResponse
from app.schemas.recommendation import (
    GenerateRecommendationsIn,
    GenerateRecommendationsOut,
    ReasonEffectiveness,
    RecommendationFeedbackIn,
    RecommendationFeedbackOut,
    RecommendationFilter,
    RecommendationListOut,
    RecommendationOut,
    RecommendationStatusIn,
)
from app.services.auth import AuthUser, get_current_user
from app.services.recommendations import RecommendationService

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.post("", response_model=GenerateRecommendationsOut)
async def generate_recommendations(
    payload: GenerateRecommendationsIn | None = None,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> GenerateRecommendationsOut:
    payload = payload or GenerateRecommendationsIn()
    service = RecommendationService(store)
    result = await service.generate_recommendations(current_user.user_id, payload.limit)
    return GenerateRecommendationsOut(
        triggered=result.triggered,
        recommendations=await service.describe(result.recommendations),
    )


@router.get("", response_model=RecommendationListOut)
async def list_recommendations(
    status: RecommendationStatus | None = Query(default=None),
    reason: RecommendationReason | None = Query(default=None),
    content_type: str | None = Query(default=None, alias="contentType"),
    category_id: int | None = Query(default=None, alias="categoryId"),
    tag_id: int | None = Query(default=None, alias="tagId"),
    min_score: float | None = Query(default=None, alias="minScore"),
    limit: int | None = Query(default=None, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> RecommendationListOut:
    filters = RecommendationFilter(
        status=status,
        reason=reason,
        min_score=min_score,
        content_type=content_type,
        category_id=category_id,
        tag_id=tag_id,
        limit=limit,
        offset=offset,
    )
    service = RecommendationService(store)
    rows, total = await service.get_user_recommendations(current_user.user_id, filters)
    return RecommendationListOut(
        recommendations=await service.describe(rows),
        count=total,
    )


@router.get("/effectiveness", response_model=list[ReasonEffectiveness])
async def recommendation_effectiveness(
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[ReasonEffectiveness]:
    return await RecommendationService(store).get_effectiveness_stats(current_user.user_id)


@router.get("/{recommendation_id}", response_model=RecommendationOut)
async def get_recommendation(
    recommendation_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> RecommendationOut:
    service = RecommendationService(store)
    rec = await service.get_recommendation(current_user.user_id, recommendation_id)
    return (await service.describe([rec]))[0]


@router.put("/{recommendation_id}", response_model=RecommendationOut)
async def update_recommendation_status(
    recommendation_id: int,
    payload: RecommendationStatusIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> RecommendationOut:
    service = RecommendationService(store)
    rec = await service.update_recommendation_status(
        current_user.user_id,
        recommendation_id,
        payload.status,
        notes=payload.notes,
    )
    return (await service.describe([rec]))[0]


@router.post("/{recommendation_id}/click", response_model=RecommendationOut)
async def click_recommendation(
    recommendation_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> RecommendationOut:
    service = RecommendationService(store)
    rec = await service.mark_clicked(current_user.user_id, recommendation_id)
    return (await service.describe([rec]))[0]


@router.post("/{recommendation_id}/dismiss", response_model=RecommendationOut)
async def dismiss_recommendation(
    recommendation_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> RecommendationOut:
    service = RecommendationService(store)
    rec = await service.mark_dismissed(current_user.user_id, recommendation_id)
    return (await service.describe([rec]))[0]


@router.delete("/{recommendation_id}", response_model=MessageResponse)
async def delete_recommendation(
    recommendation_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    await RecommendationService(store).delete_recommendation(current_user.user_id, recommendation_id)
    return MessageResponse(message="Recommendation deleted")


@router.post("/{recommendation_id}/feedback", response_model=RecommendationFeedbackOut)
async def recommendation_feedback(
    recommendation_id: int,
    payload: RecommendationFeedbackIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> RecommendationFeedbackOut:
    feedback = await RecommendationService(store).process_recommendation_feedback(
        current_user.user_id,
        recommendation_id,
        payload.is_relevant,
        payload.feedback_text,
    )
    return RecommendationFeedbackOut.model_validate(feedback)
