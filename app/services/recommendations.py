from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, StorageError, ValidationError
from app.db.store import RecommendationStore
from app.models.common import utcnow
from app.models.enums import InteractionType, RecommendationReason, RecommendationStatus
from app.models.recommendation import Recommendation, RecommendationFeedback
from app.schemas.recommendation import ReasonEffectiveness, RecommendationFilter, RecommendationOut

logger = logging.getLogger(__name__)

RECENT_SEED_COUNT = 5
RECENT_ASSESSMENT_COUNT = 5
COLLEAGUE_INTERACTION_TYPES = (InteractionType.VIEW, InteractionType.BOOKMARK, InteractionType.RATE)

# Raw strategy scores are not calibrated against each other.
POPULARITY_SCALE = 100.0
TRENDING_SCALE = 50.0
COLLEAGUE_SCALE = 10.0

STRATEGY_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("similar_content", 0.20),
    ("interest", 0.20),
    ("assessment", 0.20),
    ("popularity", 0.15),
    ("trending", 0.15),
    ("colleague", 0.10),
)


def allocate_quotas(needed: int) -> dict[str, int]:
    """Per-strategy quota, ``ceil(needed * weight)`` each; the sum may exceed ``needed``."""
    return {name: math.ceil(needed * weight) for name, weight in STRATEGY_WEIGHTS}


@dataclass(slots=True)
class GenerationResult:
    triggered: bool
    recommendations: list[Recommendation]
    created: int = 0
    expired: int = 0


class RecommendationService:
    def __init__(
        self,
        store: RecommendationStore,
        *,
        ttl_days: int | None = None,
        trending_day_range: int | None = None,
    ) -> None:
        self.store = store
        self.ttl_days = settings.recommendation_ttl_days if ttl_days is None else ttl_days
        self.trending_day_range = settings.trending_day_range if trending_day_range is None else trending_day_range

    # generation

    async def generate_recommendations(self, user_id: int, limit: int | None = None) -> GenerationResult:
        limit = settings.recommendation_default_limit if limit is None else limit
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        async with self.store.transaction():
            expired = await self._expire(user_id)
            active = await self.store.count_recommendations(user_id, RecommendationStatus.ACTIVE.value)
            created = 0
            triggered = active < limit
            if triggered:
                quotas = allocate_quotas(limit - active)
                strategies: dict[str, Callable[[int, int], Awaitable[list[Recommendation]]]] = {
                    "similar_content": self._similar_content,
                    "interest": self._interest,
                    "assessment": self._assessment,
                    "popularity": self._popularity,
                    "trending": self._trending,
                    "colleague": self._colleague,
                }
                for name, _ in STRATEGY_WEIGHTS:
                    created += len(await self._run_strategy(name, strategies[name], user_id, quotas[name]))
            items, _ = await self.store.get_user_recommendations(
                user_id,
                RecommendationFilter(status=RecommendationStatus.ACTIVE, limit=limit),
            )

        logger.info(
            "Recommendations for user=%s: active=%s created=%s expired=%s triggered=%s",
            user_id,
            active,
            created,
            expired,
            triggered,
        )
        return GenerationResult(triggered=triggered, recommendations=items, created=created, expired=expired)

    async def _run_strategy(
        self,
        name: str,
        strategy: Callable[[int, int], Awaitable[list[Recommendation]]],
        user_id: int,
        quota: int,
    ) -> list[Recommendation]:
        try:
            return await strategy(user_id, quota)
        except StorageError:
            raise
        except Exception:
            logger.exception("Recommendation strategy %s failed for user=%s", name, user_id)
            return []

    async def _insert(
        self,
        user_id: int,
        content_id: int,
        score: float,
        reason: RecommendationReason,
    ) -> Recommendation | None:
        if await self.store.recommendation_exists(user_id, content_id):
            return None
        return await self.store.create_recommendation(user_id, content_id, score, reason.value)

    async def _similar_content(self, user_id: int, quota: int) -> list[Recommendation]:
        out: list[Recommendation] = []
        seeds = await self.store.get_recently_interacted_content_ids(user_id, RECENT_SEED_COUNT)
        for seed_id in seeds:
            # Each seed gets the full quota.
            per_seed = 0
            for edge in await self.store.get_content_similarities(seed_id):
                related = edge.content_id_b if edge.content_id_a == seed_id else edge.content_id_a
                rec = await self._insert(user_id, related, edge.similarity_score, RecommendationReason.SIMILAR_CONTENT)
                if rec is None:
                    continue
                out.append(rec)
                per_seed += 1
                if per_seed >= quota:
                    break
        return out

    async def _interest(self, user_id: int, quota: int) -> list[Recommendation]:
        out: list[Recommendation] = []
        for interest in await self.store.get_user_interests(user_id):
            term = (interest.interest_area or "").strip()
            if not term:
                continue
            matches = await self.store.search_contents(term, exclude_recommended_for=user_id, limit=quota)
            for content in matches:
                rec = await self._insert(user_id, content.id, interest.confidence, RecommendationReason.USER_INTEREST)
                if rec is not None:
                    out.append(rec)
                if len(out) >= quota:
                    return out
        return out

    async def _assessment(self, user_id: int, quota: int) -> list[Recommendation]:
        out: list[Recommendation] = []
        for result in await self.store.get_recent_assessment_results(user_id, RECENT_ASSESSMENT_COUNT):
            for link in await self.store.get_content_for_assessment_result(result.id):
                rec = await self._insert(
                    user_id,
                    link.content_id,
                    link.relevance_score,
                    RecommendationReason.ASSESSMENT_BASED,
                )
                if rec is not None:
                    out.append(rec)
                if len(out) >= quota:
                    return out
        return out

    async def _from_counts(
        self,
        user_id: int,
        ranked: list[tuple[int, int]],
        scale: float,
        reason: RecommendationReason,
    ) -> list[Recommendation]:
        out: list[Recommendation] = []
        for content_id, count in ranked:
            rec = await self._insert(user_id, content_id, count / scale, reason)
            if rec is not None:
                out.append(rec)
        return out

    async def _popularity(self, user_id: int, quota: int) -> list[Recommendation]:
        ranked = await self.store.get_popular_unseen_content(user_id, quota)
        return await self._from_counts(user_id, ranked, POPULARITY_SCALE, RecommendationReason.POPULAR)

    async def _trending(self, user_id: int, quota: int) -> list[Recommendation]:
        since = utcnow() - timedelta(days=self.trending_day_range)
        ranked = await self.store.get_trending_unseen_content(user_id, since, quota)
        return await self._from_counts(user_id, ranked, TRENDING_SCALE, RecommendationReason.TRENDING)

    async def _colleague(self, user_id: int, quota: int) -> list[Recommendation]:
        account = await self.store.get_account(user_id)
        if account is None or account.organization_id is None:
            return []
        ranked = await self.store.get_colleague_content(
            user_id,
            account.organization_id,
            COLLEAGUE_INTERACTION_TYPES,
            quota,
        )
        return await self._from_counts(user_id, ranked, COLLEAGUE_SCALE, RecommendationReason.COLLEAGUE_USED)

    # lifecycle

    async def _expire(self, user_id: int | None) -> int:
        cutoff = utcnow() - timedelta(days=self.ttl_days)
        return await self.store.expire_recommendations(cutoff, user_id=user_id)

    async def expire_stale(self, user_id: int | None = None) -> int:
        async with self.store.transaction():
            expired = await self._expire(user_id)
        if expired:
            logger.info("Expired %s recommendations (user=%s)", expired, user_id if user_id is not None else "*")
        return expired

    async def create_recommendation(
        self,
        user_id: int,
        content_id: int,
        score: float,
        reason: RecommendationReason,
        notes: str | None = None,
    ) -> Recommendation:
        async with self.store.transaction():
            if await self.store.get_content(content_id) is None:
                raise NotFoundError(f"Content {content_id} not found", code="CONTENT_NOT_FOUND")
            rec = await self.store.create_recommendation(user_id, content_id, score, reason.value, notes=notes)
            if rec is None:
                raise ConflictError(
                    "An active recommendation already exists for this content",
                    code="DUPLICATE_RECOMMENDATION",
                )
        return rec

    async def get_user_recommendations(
        self,
        user_id: int,
        filters: RecommendationFilter | None = None,
    ) -> tuple[list[Recommendation], int]:
        return await self.store.get_user_recommendations(user_id, filters or RecommendationFilter())

    async def describe(self, rows: Sequence[Recommendation]) -> list[RecommendationOut]:
        """Output models with the recommended content's title, type and description joined in."""
        contents = await self.store.get_contents(r.content_id for r in rows)
        out: list[RecommendationOut] = []
        for row in rows:
            item = RecommendationOut.model_validate(row)
            content = contents.get(row.content_id)
            if content is not None:
                item.content_title = content.title
                item.content_type = content.content_type
                item.content_description = content.description
            out.append(item)
        return out

    async def get_recommendation(self, user_id: int, recommendation_id: int) -> Recommendation:
        rec = await self.store.get_recommendation(user_id, recommendation_id)
        if rec is None:
            raise NotFoundError("Recommendation not found", code="RECOMMENDATION_NOT_FOUND")
        return rec

    async def _transition(
        self,
        rec: Recommendation,
        status: RecommendationStatus,
        notes: str | None = None,
    ) -> Recommendation:
        current = RecommendationStatus(rec.status)
        if current.is_terminal:
            raise ConflictError(
                f"Recommendation is {current.value}; terminal states cannot change",
                code="INVALID_STATUS_TRANSITION",
            )
        if status is RecommendationStatus.ACTIVE:
            if notes is not None:
                rec.notes = notes
                await self.store.flush()
            return rec
        if not await self.store.update_recommendation_status(rec, status, notes=notes):
            raise ConflictError(
                "Recommendation left ACTIVE concurrently",
                code="INVALID_STATUS_TRANSITION",
            )
        return rec

    async def update_recommendation_status(
        self,
        user_id: int,
        recommendation_id: int,
        status: RecommendationStatus,
        notes: str | None = None,
    ) -> Recommendation:
        async with self.store.transaction():
            rec = await self.get_recommendation(user_id, recommendation_id)
            rec = await self._transition(rec, RecommendationStatus(status), notes)
        return rec

    async def mark_clicked(self, user_id: int, recommendation_id: int) -> Recommendation:
        return await self.update_recommendation_status(user_id, recommendation_id, RecommendationStatus.CLICKED)

    async def mark_dismissed(self, user_id: int, recommendation_id: int) -> Recommendation:
        return await self.update_recommendation_status(user_id, recommendation_id, RecommendationStatus.DISMISSED)

    async def delete_recommendation(self, user_id: int, recommendation_id: int) -> Recommendation:
        async with self.store.transaction():
            rec = await self.get_recommendation(user_id, recommendation_id)
            await self.store.delete_recommendation(rec)
        return rec

    async def process_recommendation_feedback(
        self,
        user_id: int,
        recommendation_id: int,
        is_relevant: bool,
        feedback_text: str | None = None,
    ) -> RecommendationFeedback:
        async with self.store.transaction():
            rec = await self.get_recommendation(user_id, recommendation_id)
            feedback = await self.store.create_recommendation_feedback(
                user_id,
                recommendation_id,
                is_relevant,
                feedback_text,
            )
            if not is_relevant and rec.status == RecommendationStatus.ACTIVE.value:
                await self.store.update_recommendation_status(rec, RecommendationStatus.DISMISSED)
        return feedback

    async def get_effectiveness_stats(self, user_id: int | None = None) -> list[ReasonEffectiveness]:
        out: list[ReasonEffectiveness] = []
        for row in await self.store.get_recommendation_outcomes(user_id):
            total = row["total"]
            out.append(
                ReasonEffectiveness(
                    reason=RecommendationReason(row["reason"]),
                    total=total,
                    click_rate=row["clicked"] / total if total else 0.0,
                    dismiss_rate=row["dismissed"] / total if total else 0.0,
                    mean_relevance=row["mean_relevance"],
                )
            )
        return sorted(out, key=lambda r: r.reason.value)
