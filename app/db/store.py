from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, case, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.core.config import settings
from app.core.errors import StorageError
from app.models.account import Account
from app.models.common import utcnow
from app.models.content import (
    AssessmentContentLink,
    AssessmentResult,
    Category,
    Content,
    ContentCategory,
    ContentTag,
    Tag,
)
from app.models.enums import InteractionType, RecommendationStatus
from app.models.interaction import ContentInteraction
from app.models.recommendation import Recommendation, RecommendationFeedback, UserInterest, UserPreference
from app.models.similarity import ContentSimilarity
from app.schemas.recommendation import RecommendationFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def like_pattern(term: str) -> str:
    """Substring pattern for ILIKE with the term's own wildcards escaped (use ``escape="\\"``)."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def ordered_pair(content_id_a: int, content_id_b: int) -> tuple[int, int]:
    return (content_id_a, content_id_b) if content_id_a <= content_id_b else (content_id_b, content_id_a)


class RecommendationStore:
    """Storage adapter used by the recommendation core.

    Every call is bounded by ``timeout`` seconds. Driver and ORM failures
    surface as :class:`StorageError` with the original exception chained.
    """

    def __init__(self, db: AsyncSession, timeout: float | None = None) -> None:
        self.db = db
        self.timeout = settings.storage_timeout_seconds if timeout is None else timeout

    async def _run(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Storage call exceeded {self.timeout}s") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Storage call failed: {exc.__class__.__name__}") from exc

    async def execute(self, statement: Any) -> Any:
        return await self._run(self.db.execute(statement))

    async def scalars(self, statement: Select) -> list[Any]:
        result = await self.execute(statement)
        return list(result.scalars().all())

    async def scalar(self, statement: Select) -> Any:
        result = await self.execute(statement)
        return result.scalar_one_or_none()

    async def get(self, model: type[T], ident: Any) -> T | None:
        return await self._run(self.db.get(model, ident))

    async def add(self, row: T) -> T:
        self.db.add(row)
        await self.flush()
        return row

    async def add_unique(self, row: Any) -> bool:
        """Insert ``row`` inside a SAVEPOINT; False when a unique index rejects it."""
        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await asyncio.wait_for(self.db.flush(), timeout=self.timeout)
        except IntegrityError:
            logger.debug("Unique insert skipped for %s", type(row).__name__)
            return False
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Storage call exceeded {self.timeout}s") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Storage call failed: {exc.__class__.__name__}") from exc
        return True

    async def remove(self, row: Any) -> None:
        await self._run(self.db.delete(row))
        await self.flush()

    async def flush(self) -> None:
        await self._run(self.db.flush())

    async def commit(self) -> None:
        await self._run(self.db.commit())

    async def rollback(self) -> None:
        # Not bounded by the timeout: a cancelled call still has to release its transaction.
        await self.db.rollback()

    def savepoint(self) -> AsyncSessionTransaction:
        return self.db.begin_nested()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Commit once on success; roll back on any error or cancellation."""
        try:
            yield
            await self.commit()
        except BaseException:
            await self.rollback()
            raise

    # content

    async def get_content(self, content_id: int) -> Content | None:
        return await self.get(Content, content_id)

    async def get_contents(self, content_ids: Iterable[int]) -> dict[int, Content]:
        ids = list(set(content_ids))
        if not ids:
            return {}
        rows = await self.scalars(select(Content).where(Content.id.in_(ids)))
        return {row.id: row for row in rows}

    async def get_contents_of_type(self, content_type: str, exclude_id: int, limit: int) -> list[Content]:
        stmt = (
            select(Content)
            .where(Content.content_type == content_type, Content.id != exclude_id)
            .order_by(Content.id.asc())
            .limit(limit)
        )
        return await self.scalars(stmt)

    async def search_contents(self, term: str, *, exclude_recommended_for: int | None = None, limit: int = 5) -> list[Content]:
        pattern = like_pattern(term)
        stmt = select(Content).where(
            or_(Content.title.ilike(pattern, escape="\\"), Content.description.ilike(pattern, escape="\\"))
        )
        if exclude_recommended_for is not None:
            stmt = stmt.where(
                ~exists().where(
                    Recommendation.user_id == exclude_recommended_for,
                    Recommendation.content_id == Content.id,
                )
            )
        return await self.scalars(stmt.order_by(Content.id.asc()).limit(limit))

    async def get_content_tag_ids(self, content_id: int) -> list[int]:
        return await self.scalars(select(ContentTag.tag_id).where(ContentTag.content_id == content_id))

    async def get_contents_sharing_tags(self, content_id: int, tag_ids: Sequence[int], limit: int) -> list[tuple[int, int]]:
        match_count = func.count(ContentTag.tag_id).label("tag_match_count")
        stmt = (
            select(ContentTag.content_id, match_count)
            .where(ContentTag.content_id != content_id, ContentTag.tag_id.in_(list(tag_ids)))
            .group_by(ContentTag.content_id)
            .order_by(match_count.desc(), ContentTag.content_id.asc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(int(row[0]), int(row[1])) for row in result.all()]

    # interactions

    async def create_content_interaction(
        self,
        user_id: int,
        content_id: int,
        interaction_type: InteractionType,
        *,
        duration_seconds: int | None = None,
        completion_percentage: int | None = None,
        rating: int | None = None,
        bookmarked: bool = False,
    ) -> ContentInteraction:
        row = ContentInteraction(
            user_id=user_id,
            content_id=content_id,
            interaction_type=interaction_type.value,
            duration_seconds=duration_seconds,
            completion_percentage=completion_percentage,
            rating=rating,
            bookmarked=bookmarked,
        )
        return await self.add(row)

    async def create_exclusive_interaction(
        self,
        user_id: int,
        content_id: int,
        interaction_type: InteractionType,
        *,
        rating: int | None = None,
        bookmarked: bool = False,
    ) -> ContentInteraction | None:
        """BOOKMARK/RATE insert guarded by the per-pair partial unique index; None on collision."""
        row = ContentInteraction(
            user_id=user_id,
            content_id=content_id,
            interaction_type=interaction_type.value,
            rating=rating,
            bookmarked=bookmarked,
        )
        if not await self.add_unique(row):
            return None
        return row

    async def find_interaction(
        self,
        user_id: int,
        content_id: int,
        interaction_type: InteractionType,
    ) -> ContentInteraction | None:
        stmt = (
            select(ContentInteraction)
            .where(
                ContentInteraction.user_id == user_id,
                ContentInteraction.content_id == content_id,
                ContentInteraction.interaction_type == interaction_type.value,
            )
            .order_by(ContentInteraction.id.asc())
            .limit(1)
        )
        return await self.scalar(stmt)

    async def get_user_interactions(
        self,
        user_id: int,
        interaction_type: InteractionType | None = None,
    ) -> list[ContentInteraction]:
        stmt = select(ContentInteraction).where(ContentInteraction.user_id == user_id)
        if interaction_type is not None:
            stmt = stmt.where(ContentInteraction.interaction_type == interaction_type.value)
        return await self.scalars(stmt.order_by(ContentInteraction.created_at.desc(), ContentInteraction.id.desc()))

    async def get_content_interactions(
        self,
        content_id: int,
        interaction_type: InteractionType | None = None,
    ) -> list[ContentInteraction]:
        stmt = select(ContentInteraction).where(ContentInteraction.content_id == content_id)
        if interaction_type is not None:
            stmt = stmt.where(ContentInteraction.interaction_type == interaction_type.value)
        return await self.scalars(stmt.order_by(ContentInteraction.created_at.desc(), ContentInteraction.id.desc()))

    async def delete_content_interaction(self, interaction: ContentInteraction) -> ContentInteraction:
        await self.remove(interaction)
        return interaction

    async def get_interaction_breakdown(self, content_id: int) -> dict[str, tuple[int, float | None]]:
        stmt = (
            select(
                ContentInteraction.interaction_type,
                func.count(ContentInteraction.id),
                func.avg(ContentInteraction.rating),
            )
            .where(ContentInteraction.content_id == content_id)
            .group_by(ContentInteraction.interaction_type)
        )
        result = await self.execute(stmt)
        return {
            str(kind): (int(count), float(avg) if avg is not None else None)
            for kind, count, avg in result.all()
        }

    async def get_recently_interacted_content_ids(self, user_id: int, limit: int = 5) -> list[int]:
        last_seen = func.max(ContentInteraction.created_at).label("last_seen")
        stmt = (
            select(ContentInteraction.content_id, last_seen)
            .where(ContentInteraction.user_id == user_id)
            .group_by(ContentInteraction.content_id)
            .order_by(last_seen.desc(), ContentInteraction.content_id.desc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [int(row[0]) for row in result.all()]

    async def get_content_user_ids(self, content_id: int) -> list[int]:
        stmt = select(ContentInteraction.user_id).where(ContentInteraction.content_id == content_id).distinct()
        return [int(x) for x in await self.scalars(stmt)]

    async def get_co_interacted_contents(
        self,
        content_id: int,
        user_ids: Sequence[int],
        min_shared_users: int,
        limit: int,
    ) -> list[tuple[int, int]]:
        overlap = func.count(func.distinct(ContentInteraction.user_id)).label("user_overlap_count")
        stmt = (
            select(ContentInteraction.content_id, overlap)
            .where(ContentInteraction.user_id.in_(list(user_ids)), ContentInteraction.content_id != content_id)
            .group_by(ContentInteraction.content_id)
            .having(overlap >= min_shared_users)
            .order_by(overlap.desc(), ContentInteraction.content_id.asc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(int(row[0]), int(row[1])) for row in result.all()]

    async def get_most_interacted_content(self, limit: int) -> list[tuple[int, int]]:
        total = func.count(ContentInteraction.id).label("interaction_count")
        stmt = (
            select(ContentInteraction.content_id, total)
            .group_by(ContentInteraction.content_id)
            .order_by(total.desc(), ContentInteraction.content_id.asc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(int(row[0]), int(row[1])) for row in result.all()]

    def _not_seen_by(self, user_id: int, content_column: Any) -> Any:
        seen = ContentInteraction.__table__.alias("seen")
        return ~exists().where(seen.c.user_id == user_id, seen.c.content_id == content_column)

    async def get_popular_unseen_content(self, user_id: int, limit: int) -> list[tuple[int, int]]:
        view_count = func.count(ContentInteraction.id).label("view_count")
        stmt = (
            select(ContentInteraction.content_id, view_count)
            .where(
                ContentInteraction.interaction_type == InteractionType.VIEW.value,
                self._not_seen_by(user_id, ContentInteraction.content_id),
            )
            .group_by(ContentInteraction.content_id)
            .order_by(view_count.desc(), ContentInteraction.content_id.asc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(int(row[0]), int(row[1])) for row in result.all()]

    async def get_trending_unseen_content(self, user_id: int, since: datetime, limit: int) -> list[tuple[int, int]]:
        recent = func.count(ContentInteraction.id).label("recent_interactions")
        stmt = (
            select(ContentInteraction.content_id, recent)
            .where(
                ContentInteraction.created_at > since,
                self._not_seen_by(user_id, ContentInteraction.content_id),
            )
            .group_by(ContentInteraction.content_id)
            .order_by(recent.desc(), ContentInteraction.content_id.asc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(int(row[0]), int(row[1])) for row in result.all()]

    async def get_colleague_content(
        self,
        user_id: int,
        organization_id: int,
        interaction_types: Sequence[InteractionType],
        limit: int,
    ) -> list[tuple[int, int]]:
        count = func.count(ContentInteraction.id).label("colleague_interactions")
        stmt = (
            select(ContentInteraction.content_id, count)
            .join(Account, Account.id == ContentInteraction.user_id)
            .where(
                Account.organization_id == organization_id,
                Account.id != user_id,
                ContentInteraction.interaction_type.in_([t.value for t in interaction_types]),
                self._not_seen_by(user_id, ContentInteraction.content_id),
            )
            .group_by(ContentInteraction.content_id)
            .order_by(count.desc(), ContentInteraction.content_id.asc())
            .limit(limit)
        )
        result = await self.execute(stmt)
        return [(int(row[0]), int(row[1])) for row in result.all()]

    async def get_content_touched_since(self, since: datetime) -> list[int]:
        stmt = select(ContentInteraction.content_id).where(ContentInteraction.created_at >= since).distinct()
        return [int(x) for x in await self.scalars(stmt)]

    # similarity

    async def find_similarity(
        self,
        content_id_a: int,
        content_id_b: int,
        similarity_type: str,
    ) -> ContentSimilarity | None:
        low, high = ordered_pair(content_id_a, content_id_b)
        stmt = select(ContentSimilarity).where(
            ContentSimilarity.content_id_a == low,
            ContentSimilarity.content_id_b == high,
            ContentSimilarity.similarity_type == similarity_type,
        )
        return await self.scalar(stmt)

    async def create_content_similarity(
        self,
        content_id_a: int,
        content_id_b: int,
        score: float,
        similarity_type: str,
    ) -> ContentSimilarity | None:
        """Insert a new edge; None when the unordered pair already has one for this type."""
        low, high = ordered_pair(content_id_a, content_id_b)
        row = ContentSimilarity(
            content_id_a=low,
            content_id_b=high,
            similarity_score=score,
            similarity_type=similarity_type,
        )
        if await self.add_unique(row):
            return row
        return None

    async def upsert_content_similarity(
        self,
        content_id_a: int,
        content_id_b: int,
        score: float,
        similarity_type: str,
    ) -> ContentSimilarity:
        existing = await self.find_similarity(content_id_a, content_id_b, similarity_type)
        if existing is None:
            created = await self.create_content_similarity(content_id_a, content_id_b, score, similarity_type)
            if created is not None:
                return created
            # Written concurrently; fall through and update that row.
            existing = await self.find_similarity(content_id_a, content_id_b, similarity_type)
            if existing is None:
                raise StorageError("Similarity edge vanished during upsert")
        existing.similarity_score = score
        existing.updated_at = utcnow()
        await self.flush()
        return existing

    async def get_content_similarities(
        self,
        content_id: int,
        similarity_type: str | None = None,
    ) -> list[ContentSimilarity]:
        stmt = select(ContentSimilarity).where(
            or_(ContentSimilarity.content_id_a == content_id, ContentSimilarity.content_id_b == content_id)
        )
        if similarity_type is not None:
            stmt = stmt.where(ContentSimilarity.similarity_type == similarity_type)
        stmt = stmt.order_by(ContentSimilarity.similarity_score.desc(), ContentSimilarity.id.asc())
        return await self.scalars(stmt)

    async def get_similarity(self, similarity_id: int) -> ContentSimilarity | None:
        return await self.get(ContentSimilarity, similarity_id)

    # recommendations

    async def create_recommendation(
        self,
        user_id: int,
        content_id: int,
        score: float,
        reason: str,
        *,
        status: str = RecommendationStatus.ACTIVE.value,
        notes: str | None = None,
    ) -> Recommendation | None:
        row = Recommendation(
            user_id=user_id,
            content_id=content_id,
            score=score,
            reason=reason,
            status=status,
            notes=notes,
        )
        if not await self.add_unique(row):
            return None
        return row

    async def recommendation_exists(self, user_id: int, content_id: int) -> bool:
        stmt = select(
            exists().where(Recommendation.user_id == user_id, Recommendation.content_id == content_id)
        )
        return bool(await self.scalar(stmt))

    async def count_recommendations(self, user_id: int, status: str) -> int:
        stmt = select(func.count(Recommendation.id)).where(
            Recommendation.user_id == user_id,
            Recommendation.status == status,
        )
        return int(await self.scalar(stmt) or 0)

    def _filtered_recommendations(self, user_id: int, filters: RecommendationFilter) -> Select:
        stmt = select(Recommendation).where(Recommendation.user_id == user_id)
        if filters.status is not None:
            stmt = stmt.where(Recommendation.status == filters.status.value)
        if filters.reason is not None:
            stmt = stmt.where(Recommendation.reason == filters.reason.value)
        if filters.min_score is not None:
            stmt = stmt.where(Recommendation.score >= filters.min_score)
        if filters.content_type is not None:
            stmt = stmt.join(Content, Content.id == Recommendation.content_id).where(
                Content.content_type == filters.content_type
            )
        if filters.category_id is not None:
            stmt = stmt.where(
                exists().where(
                    ContentCategory.content_id == Recommendation.content_id,
                    ContentCategory.category_id == filters.category_id,
                )
            )
        if filters.tag_id is not None:
            stmt = stmt.where(
                exists().where(
                    ContentTag.content_id == Recommendation.content_id,
                    ContentTag.tag_id == filters.tag_id,
                )
            )
        return stmt

    async def get_user_recommendations(
        self,
        user_id: int,
        filters: RecommendationFilter,
    ) -> tuple[list[Recommendation], int]:
        base = self._filtered_recommendations(user_id, filters)
        total = await self.scalar(select(func.count()).select_from(base.order_by(None).subquery()))
        stmt = base.order_by(Recommendation.score.desc(), Recommendation.created_at.desc(), Recommendation.id.desc())
        if filters.offset:
            stmt = stmt.offset(filters.offset)
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)
        return await self.scalars(stmt), int(total or 0)

    async def get_recommendation(self, user_id: int, recommendation_id: int) -> Recommendation | None:
        stmt = select(Recommendation).where(
            Recommendation.id == recommendation_id,
            Recommendation.user_id == user_id,
        )
        return await self.scalar(stmt)

    async def update_recommendation_status(
        self,
        recommendation: Recommendation,
        status: RecommendationStatus,
        *,
        notes: str | None = None,
    ) -> bool:
        """Conditional ACTIVE -> terminal update. False when the row already left ACTIVE."""
        now = utcnow()
        values: dict[str, Any] = {"status": status.value, "updated_at": now}
        if status is RecommendationStatus.CLICKED:
            values["clicked_at"] = now
        elif status is RecommendationStatus.DISMISSED:
            values["dismissed_at"] = now
        if notes is not None:
            values["notes"] = notes
        stmt = (
            update(Recommendation)
            .where(
                Recommendation.id == recommendation.id,
                Recommendation.status == RecommendationStatus.ACTIVE.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.execute(stmt)
        await self._run(self.db.refresh(recommendation))
        return bool(result.rowcount)

    async def expire_recommendations(self, older_than: datetime, user_id: int | None = None) -> int:
        stmt = (
            update(Recommendation)
            .where(
                Recommendation.status == RecommendationStatus.ACTIVE.value,
                Recommendation.created_at < older_than,
            )
            .values(status=RecommendationStatus.EXPIRED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if user_id is not None:
            stmt = stmt.where(Recommendation.user_id == user_id)
        result = await self.execute(stmt)
        return int(result.rowcount or 0)

    async def delete_recommendation(self, recommendation: Recommendation) -> None:
        await self.remove(recommendation)

    async def create_recommendation_feedback(
        self,
        user_id: int,
        recommendation_id: int,
        is_relevant: bool,
        feedback_text: str | None,
    ) -> RecommendationFeedback:
        row = RecommendationFeedback(
            user_id=user_id,
            recommendation_id=recommendation_id,
            is_relevant=is_relevant,
            feedback_text=feedback_text,
        )
        return await self.add(row)

    async def get_recommendation_outcomes(self, user_id: int | None = None) -> list[dict[str, Any]]:
        feedback = (
            select(
                RecommendationFeedback.recommendation_id.label("recommendation_id"),
                func.avg(case((RecommendationFeedback.is_relevant.is_(True), 1.0), else_=0.0)).label("relevance"),
            )
            .group_by(RecommendationFeedback.recommendation_id)
            .subquery()
        )
        stmt = (
            select(
                Recommendation.reason,
                func.count(Recommendation.id),
                func.sum(case((Recommendation.status == RecommendationStatus.CLICKED.value, 1), else_=0)),
                func.sum(case((Recommendation.status == RecommendationStatus.DISMISSED.value, 1), else_=0)),
                func.avg(feedback.c.relevance),
            )
            .outerjoin(feedback, feedback.c.recommendation_id == Recommendation.id)
            .group_by(Recommendation.reason)
        )
        if user_id is not None:
            stmt = stmt.where(Recommendation.user_id == user_id)
        result = await self.execute(stmt)
        return [
            {
                "reason": str(reason),
                "total": int(total or 0),
                "clicked": int(clicked or 0),
                "dismissed": int(dismissed or 0),
                "mean_relevance": float(relevance) if relevance is not None else None,
            }
            for reason, total, clicked, dismissed, relevance in result.all()
        ]

    # generation inputs

    async def get_account(self, user_id: int) -> Account | None:
        return await self.get(Account, user_id)

    async def get_user_interests(self, user_id: int) -> list[UserInterest]:
        stmt = (
            select(UserInterest)
            .where(UserInterest.user_id == user_id)
            .order_by(UserInterest.confidence.desc(), UserInterest.id.asc())
        )
        return await self.scalars(stmt)

    async def get_recent_assessment_results(self, user_id: int, limit: int = 5) -> list[AssessmentResult]:
        stmt = (
            select(AssessmentResult)
            .where(AssessmentResult.user_id == user_id)
            .order_by(AssessmentResult.completed_at.desc(), AssessmentResult.id.desc())
            .limit(limit)
        )
        return await self.scalars(stmt)

    async def get_content_for_assessment_result(self, assessment_result_id: int) -> list[AssessmentContentLink]:
        stmt = (
            select(AssessmentContentLink)
            .where(AssessmentContentLink.assessment_result_id == assessment_result_id)
            .order_by(AssessmentContentLink.relevance_score.desc(), AssessmentContentLink.id.asc())
        )
        return await self.scalars(stmt)


    # preferences

    async def get_category(self, category_id: int) -> Category | None:
        return await self.get(Category, category_id)

    async def get_tag(self, tag_id: int) -> Tag | None:
        return await self.get(Tag, tag_id)

    async def create_user_preference(
        self,
        user_id: int,
        *,
        category_id: int | None = None,
        tag_id: int | None = None,
        content_type: str | None = None,
        weight: float = 1.0,
    ) -> UserPreference:
        row = UserPreference(
            user_id=user_id,
            category_id=category_id,
            tag_id=tag_id,
            content_type=content_type,
            weight=weight,
        )
        return await self.add(row)

    async def get_user_preference(self, user_id: int, preference_id: int) -> UserPreference | None:
        stmt = select(UserPreference).where(UserPreference.id == preference_id, UserPreference.user_id == user_id)
        return await self.scalar(stmt)

    async def get_user_preferences(
        self,
        user_id: int,
        *,
        category_id: int | None = None,
        tag_id: int | None = None,
        content_type: str | None = None,
    ) -> list[UserPreference]:
        stmt = select(UserPreference).where(UserPreference.user_id == user_id)
        if category_id is not None:
            stmt = stmt.where(UserPreference.category_id == category_id)
        if tag_id is not None:
            stmt = stmt.where(UserPreference.tag_id == tag_id)
        if content_type is not None:
            stmt = stmt.where(UserPreference.content_type == content_type)
        return await self.scalars(stmt.order_by(UserPreference.weight.desc(), UserPreference.id.asc()))

    async def increment_preference_weight(self, preference: UserPreference, increment_by: float) -> None:
        stmt = (
            update(UserPreference)
            .where(UserPreference.id == preference.id)
            .values(weight=UserPreference.weight + increment_by, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.execute(stmt)
        await self._run(self.db.refresh(preference))

    async def get_preference_breakdown(self, user_id: int, column_name: str) -> list[tuple[Any, int, float]]:
        column = getattr(UserPreference, column_name)
        stmt = (
            select(column, func.count(UserPreference.id), func.sum(UserPreference.weight))
            .where(UserPreference.user_id == user_id, column.is_not(None))
            .group_by(column)
            .order_by(func.sum(UserPreference.weight).desc(), column.asc())
        )
        result = await self.execute(stmt)
        return [(value, int(count), float(total or 0.0)) for value, count, total in result.all()]
