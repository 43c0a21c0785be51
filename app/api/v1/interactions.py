from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_store
from app.db.store import RecommendationStore
from app.models.enums import InteractionType
from app.schemas.interaction import BookmarkToggleOut, InteractionDetails, InteractionIn, InteractionOut, RatingIn
from app.services.auth import AuthUser, get_current_user
from app.services.interactions import InteractionService

router = APIRouter(prefix="/interactions", tags=["interactions"])


@router.post("", response_model=InteractionOut)
async def record_interaction(
    payload: InteractionIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> InteractionOut:
    details = InteractionDetails(
        duration_seconds=payload.duration_seconds,
        completion_percentage=payload.completion_percentage,
        rating=payload.rating,
    )
    row = await InteractionService(store).record_interaction(
        current_user.user_id,
        payload.content_id,
        payload.interaction_type,
        details,
    )
    return InteractionOut.model_validate(row)


@router.get("", response_model=list[InteractionOut])
async def my_interactions(
    interaction_type: InteractionType = Query(alias="type"),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[InteractionOut]:
    rows = await InteractionService(store).get_user_interactions_by_type(current_user.user_id, interaction_type)
    return [InteractionOut.model_validate(r) for r in rows]


@router.post("/bookmark/{content_id}", response_model=BookmarkToggleOut)
async def toggle_bookmark(
    content_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> BookmarkToggleOut:
    bookmarked, row = await InteractionService(store).toggle_bookmark(current_user.user_id, content_id)
    return BookmarkToggleOut(bookmarked=bookmarked, interaction=InteractionOut.model_validate(row))


@router.post("/rate/{content_id}", response_model=InteractionOut)
async def rate_content(
    content_id: int,
    payload: RatingIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> InteractionOut:
    row = await InteractionService(store).rate_content(current_user.user_id, content_id, payload.rating)
    return InteractionOut.model_validate(row)
