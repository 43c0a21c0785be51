from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_store
from app.db.store import RecommendationStore
from app.schemas.common import MessageResponse
from app.schemas.preference import (
    PreferenceAnalyticsOut,
    PreferenceIncrementIn,
    UserPreferenceBulkItem,
    UserPreferenceIn,
    UserPreferenceOut,
    UserPreferenceUpdate,
)
from app.services.auth import AuthUser, get_current_user
from app.services.preferences import UserPreferenceService

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("", response_model=list[UserPreferenceOut])
async def list_preferences(
    category_id: int | None = Query(default=None, alias="categoryId"),
    tag_id: int | None = Query(default=None, alias="tagId"),
    content_type: str | None = Query(default=None, alias="contentType"),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[UserPreferenceOut]:
    service = UserPreferenceService(store)
    if category_id is not None:
        rows = await service.get_user_category_preferences(current_user.user_id, category_id)
    elif tag_id is not None:
        rows = await service.get_user_tag_preferences(current_user.user_id, tag_id)
    elif content_type is not None:
        rows = await service.get_user_content_type_preferences(current_user.user_id, content_type)
    else:
        rows = await service.get_user_preferences(current_user.user_id)
    return [UserPreferenceOut.model_validate(r) for r in rows]


@router.post("", response_model=UserPreferenceOut)
async def create_preference(
    payload: UserPreferenceIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> UserPreferenceOut:
    row = await UserPreferenceService(store).create_preference(current_user.user_id, payload)
    return UserPreferenceOut.model_validate(row)


@router.get("/analytics", response_model=PreferenceAnalyticsOut)
async def preference_analytics(
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> PreferenceAnalyticsOut:
    return await UserPreferenceService(store).get_user_preference_analytics(current_user.user_id)


@router.put("/bulk", response_model=list[UserPreferenceOut])
async def bulk_update_preferences(
    payload: list[UserPreferenceBulkItem],
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> list[UserPreferenceOut]:
    rows = await UserPreferenceService(store).bulk_update_preferences(current_user.user_id, payload)
    return [UserPreferenceOut.model_validate(r) for r in rows]


@router.patch("/{preference_id}", response_model=UserPreferenceOut)
async def update_preference(
    preference_id: int,
    payload: UserPreferenceUpdate,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> UserPreferenceOut:
    row = await UserPreferenceService(store).update_preference(current_user.user_id, preference_id, payload)
    return UserPreferenceOut.model_validate(row)


@router.delete("/{preference_id}", response_model=MessageResponse)
async def delete_preference(
    preference_id: int,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    await UserPreferenceService(store).delete_preference(current_user.user_id, preference_id)
    return MessageResponse(message="Preference deleted")


@router.post("/{preference_id}/increment", response_model=UserPreferenceOut)
async def increment_preference(
    preference_id: int,
    payload: PreferenceIncrementIn | None = None,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> UserPreferenceOut:
    increment_by = payload.increment_by if payload else 0.1
    row = await UserPreferenceService(store).increment_preference_weight(
        current_user.user_id,
        preference_id,
        increment_by,
    )
    return UserPreferenceOut.model_validate(row)
