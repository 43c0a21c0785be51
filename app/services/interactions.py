from __future__ import annotations

import logging

from app.core.errors import NotFoundError, ValidationError
from app.db.store import RecommendationStore
from app.models.enums import InteractionType
from app.models.interaction import ContentInteraction
from app.schemas.interaction import ContentPopularityStats, InteractionDetails, PopularContentOut

logger = logging.getLogger(__name__)


def _validate_rating(rating: object) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be an integer between 1 and 5")
    if rating < 1 or rating > 5:
        raise ValidationError("Rating must be between 1 and 5")
    return rating


def _validate_details(interaction_type: InteractionType, details: InteractionDetails) -> None:
    if details.completion_percentage is not None and not 0 <= details.completion_percentage <= 100:
        raise ValidationError("completion_percentage must be between 0 and 100")
    if details.duration_seconds is not None and details.duration_seconds < 0:
        raise ValidationError("duration_seconds must not be negative")
    if details.rating is not None and interaction_type is not InteractionType.RATE:
        raise ValidationError("rating is only accepted for RATE interactions")


class InteractionService:
    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    async def _require_content(self, content_id: int) -> None:
        if await self.store.get_content(content_id) is None:
            raise NotFoundError(f"Content {content_id} not found", code="CONTENT_NOT_FOUND")

    async def record_interaction(
        self,
        user_id: int,
        content_id: int,
        interaction_type: InteractionType,
        details: InteractionDetails | None = None,
    ) -> ContentInteraction:
        details = details or InteractionDetails()
        _validate_details(interaction_type, details)
        if interaction_type is InteractionType.RATE:
            if details.rating is None:
                raise ValidationError("RATE interactions require a rating")
            return await self.rate_content(user_id, content_id, details.rating)
        if interaction_type is InteractionType.BOOKMARK:
            return await self._ensure_bookmark(user_id, content_id)

        async with self.store.transaction():
            await self._require_content(content_id)
            row = await self.store.create_content_interaction(
                user_id,
                content_id,
                interaction_type,
                duration_seconds=details.duration_seconds,
                completion_percentage=details.completion_percentage,
            )
        return row

    async def record_view(self, user_id: int, content_id: int) -> ContentInteraction:
        return await self.record_interaction(user_id, content_id, InteractionType.VIEW)

    async def record_read(
        self,
        user_id: int,
        content_id: int,
        duration_seconds: int,
        completion_percentage: int | None = None,
    ) -> ContentInteraction:
        details = InteractionDetails(duration_seconds=duration_seconds, completion_percentage=completion_percentage)
        return await self.record_interaction(user_id, content_id, InteractionType.READ, details)

    async def record_download(self, user_id: int, content_id: int) -> ContentInteraction:
        return await self.record_interaction(user_id, content_id, InteractionType.DOWNLOAD)

    async def record_share(self, user_id: int, content_id: int) -> ContentInteraction:
        return await self.record_interaction(user_id, content_id, InteractionType.SHARE)

    async def _ensure_bookmark(self, user_id: int, content_id: int) -> ContentInteraction:
        async with self.store.transaction():
            await self._require_content(content_id)
            existing = await self.store.find_interaction(user_id, content_id, InteractionType.BOOKMARK)
            if existing is None:
                existing = await self._insert_bookmark(user_id, content_id)
        return existing

    async def _insert_bookmark(self, user_id: int, content_id: int) -> ContentInteraction:
        row = await self.store.create_exclusive_interaction(
            user_id,
            content_id,
            InteractionType.BOOKMARK,
            bookmarked=True,
        )
        if row is not None:
            return row
        # A concurrent toggle won the insert; the pair is bookmarked either way.
        logger.info("Concurrent bookmark for user=%s content=%s resolved to existing row", user_id, content_id)
        existing = await self.store.find_interaction(user_id, content_id, InteractionType.BOOKMARK)
        if existing is None:
            raise NotFoundError("Bookmark disappeared while toggling", code="BOOKMARK_NOT_FOUND")
        return existing

    async def toggle_bookmark(self, user_id: int, content_id: int) -> tuple[bool, ContentInteraction]:
        """Remove the pair's bookmark if present, otherwise create it.

        Returns ``(bookmarked, interaction)`` where ``interaction`` is the
        created row or the one that was removed.
        """
        async with self.store.transaction():
            await self._require_content(content_id)
            existing = await self.store.find_interaction(user_id, content_id, InteractionType.BOOKMARK)
            if existing is not None:
                removed = await self.store.delete_content_interaction(existing)
                result = (False, removed)
            else:
                result = (True, await self._insert_bookmark(user_id, content_id))
        return result

    async def rate_content(self, user_id: int, content_id: int, rating: int) -> ContentInteraction:
        rating = _validate_rating(rating)
        async with self.store.transaction():
            await self._require_content(content_id)
            existing = await self.store.find_interaction(user_id, content_id, InteractionType.RATE)
            if existing is None:
                existing = await self.store.create_exclusive_interaction(
                    user_id,
                    content_id,
                    InteractionType.RATE,
                    rating=rating,
                )
                if existing is None:
                    # Lost the insert race: last write wins on the row that exists.
                    existing = await self.store.find_interaction(user_id, content_id, InteractionType.RATE)
                    if existing is None:
                        raise NotFoundError("Rating disappeared while saving", code="RATING_NOT_FOUND")
            existing.rating = rating
            await self.store.flush()
        return existing

    async def get_content_popularity_stats(self, content_id: int) -> ContentPopularityStats:
        breakdown = await self.store.get_interaction_breakdown(content_id)

        def count(kind: InteractionType) -> int:
            return breakdown.get(kind.value, (0, None))[0]

        average = breakdown.get(InteractionType.RATE.value, (0, None))[1]
        return ContentPopularityStats(
            content_id=content_id,
            view_count=count(InteractionType.VIEW),
            download_count=count(InteractionType.DOWNLOAD),
            bookmark_count=count(InteractionType.BOOKMARK),
            share_count=count(InteractionType.SHARE),
            average_rating=float(average or 0.0),
            total_interactions=sum(total for total, _ in breakdown.values()),
        )

    async def get_user_interactions_by_type(
        self,
        user_id: int,
        interaction_type: InteractionType,
    ) -> list[ContentInteraction]:
        return await self.store.get_user_interactions(user_id, interaction_type)

    async def get_content_interactions_by_type(
        self,
        content_id: int,
        interaction_type: InteractionType,
    ) -> list[ContentInteraction]:
        return await self.store.get_content_interactions(content_id, interaction_type)

    async def get_most_popular_content(self, limit: int = 10) -> list[PopularContentOut]:
        ranked = await self.store.get_most_interacted_content(limit)
        contents = await self.store.get_contents(cid for cid, _ in ranked)
        out: list[PopularContentOut] = []
        for content_id, total in ranked:
            content = contents.get(content_id)
            if content is None:
                continue
            out.append(
                PopularContentOut(
                    content_id=content_id,
                    title=content.title,
                    content_type=content.content_type,
                    interaction_count=total,
                )
            )
        return out
