from __future__ import annotations

import logging
import math

from app.core.errors import NotFoundError, ValidationError
from app.db.store import RecommendationStore
from app.models.common import utcnow
from app.models.recommendation import UserPreference
from app.schemas.preference import (
    PreferenceAnalyticsOut,
    PreferenceBucket,
    UserPreferenceBulkItem,
    UserPreferenceIn,
    UserPreferenceUpdate,
)

logger = logging.getLogger(__name__)


class UserPreferenceService:
    """Per-user weights on categories, tags and content types."""

    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    async def _check_targets(self, category_id: int | None, tag_id: int | None, content_type: str | None) -> None:
        if category_id is None and tag_id is None and not content_type:
            raise ValidationError(
                "A preference needs a category, a tag or a content type",
                code="INVALID_PREFERENCE_TARGET",
            )
        if category_id is not None and await self.store.get_category(category_id) is None:
            raise NotFoundError(f"Category {category_id} not found", code="CATEGORY_NOT_FOUND")
        if tag_id is not None and await self.store.get_tag(tag_id) is None:
            raise NotFoundError(f"Tag {tag_id} not found", code="TAG_NOT_FOUND")

    async def _load(self, user_id: int, preference_id: int) -> UserPreference:
        row = await self.store.get_user_preference(user_id, preference_id)
        if row is None:
            raise NotFoundError(f"Preference {preference_id} not found", code="PREFERENCE_NOT_FOUND")
        return row

    async def create_preference(self, user_id: int, data: UserPreferenceIn) -> UserPreference:
        async with self.store.transaction():
            await self._check_targets(data.category_id, data.tag_id, data.content_type)
            row = await self.store.create_user_preference(
                user_id,
                category_id=data.category_id,
                tag_id=data.tag_id,
                content_type=data.content_type,
                weight=data.weight,
            )
        return row

    async def get_user_preferences(self, user_id: int) -> list[UserPreference]:
        return await self.store.get_user_preferences(user_id)

    async def get_user_category_preferences(self, user_id: int, category_id: int) -> list[UserPreference]:
        return await self.store.get_user_preferences(user_id, category_id=category_id)

    async def get_user_tag_preferences(self, user_id: int, tag_id: int) -> list[UserPreference]:
        return await self.store.get_user_preferences(user_id, tag_id=tag_id)

    async def get_user_content_type_preferences(self, user_id: int, content_type: str) -> list[UserPreference]:
        return await self.store.get_user_preferences(user_id, content_type=content_type)

    async def _apply(self, row: UserPreference, data: UserPreferenceUpdate) -> None:
        changes = data.model_dump(exclude_unset=True, exclude={"id"})
        if not changes:
            return
        category_id = changes.get("category_id", row.category_id)
        tag_id = changes.get("tag_id", row.tag_id)
        content_type = changes.get("content_type", row.content_type)
        await self._check_targets(category_id, tag_id, content_type)
        weight = changes.get("weight", row.weight)
        if weight is None:
            raise ValidationError("weight cannot be null", code="INVALID_PREFERENCE_WEIGHT")

        row.category_id = category_id
        row.tag_id = tag_id
        row.content_type = content_type
        row.weight = weight
        row.updated_at = utcnow()
        await self.store.flush()

    async def update_preference(self, user_id: int, preference_id: int, data: UserPreferenceUpdate) -> UserPreference:
        async with self.store.transaction():
            row = await self._load(user_id, preference_id)
            await self._apply(row, data)
        return row

    async def bulk_update_preferences(self, user_id: int, items: list[UserPreferenceBulkItem]) -> list[UserPreference]:
        """All or nothing: one unknown id or bad target rolls back every change."""
        out: list[UserPreference] = []
        async with self.store.transaction():
            for item in items:
                row = await self._load(user_id, item.id)
                await self._apply(row, item)
                out.append(row)
        logger.info("Bulk-updated %s preferences for user=%s", len(out), user_id)
        return out

    async def delete_preference(self, user_id: int, preference_id: int) -> UserPreference:
        async with self.store.transaction():
            row = await self._load(user_id, preference_id)
            await self.store.remove(row)
        return row

    async def increment_preference_weight(
        self,
        user_id: int,
        preference_id: int,
        increment_by: float = 0.1,
    ) -> UserPreference:
        if not math.isfinite(increment_by):
            raise ValidationError("increment_by must be finite", code="INVALID_PREFERENCE_WEIGHT")
        async with self.store.transaction():
            row = await self._load(user_id, preference_id)
            if row.weight + increment_by < 0:
                raise ValidationError("Preference weight cannot drop below zero", code="INVALID_PREFERENCE_WEIGHT")
            await self.store.increment_preference_weight(row, increment_by)
        return row

    async def get_user_preference_analytics(self, user_id: int) -> PreferenceAnalyticsOut:
        async def buckets(column: str) -> list[PreferenceBucket]:
            return [
                PreferenceBucket(key=value, count=count, total_weight=total)
                for value, count, total in await self.store.get_preference_breakdown(user_id, column)
            ]

        return PreferenceAnalyticsOut(
            category_preferences=await buckets("category_id"),
            tag_preferences=await buckets("tag_id"),
            content_type_preferences=await buckets("content_type"),
            total=len(await self.store.get_user_preferences(user_id)),
        )
