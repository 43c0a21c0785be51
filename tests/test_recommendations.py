import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.errors import ConflictError, NotFoundError, StorageError
from app.db.store import RecommendationStore
from app.models.common import utcnow
from app.models.content import AssessmentContentLink, AssessmentResult
from app.models.enums import InteractionType, RecommendationReason, RecommendationStatus
from app.models.recommendation import Recommendation, UserInterest
from app.schemas.recommendation import RecommendationFilter
from app.services.recommendations import RecommendationService, allocate_quotas


async def _popular_catalogue(seed, count: int = 4):
    others = [await seed.account(f"peer{i}@school.test") for i in range(2)]
    items = [await seed.content(f"Resource {i}") for i in range(count)]
    for item in items:
        for peer in others:
            await seed.interaction(peer, item)
    return items


async def _active_duplicates(db, user_id: int) -> int:
    stmt = (
        select(Recommendation.content_id)
        .where(Recommendation.user_id == user_id, Recommendation.status == RecommendationStatus.ACTIVE.value)
        .group_by(Recommendation.content_id)
        .having(func.count(Recommendation.id) > 1)
    )
    return len((await db.execute(stmt)).all())


def test_allocate_quotas_rounds_up_each_strategy() -> None:
    quotas = allocate_quotas(10)
    assert quotas == {
        "similar_content": 2,
        "interest": 2,
        "assessment": 2,
        "popularity": 2,
        "trending": 2,
        "colleague": 1,
    }
    assert sum(allocate_quotas(1).values()) == 6


async def test_cold_start_user_gets_popular_or_trending_only(store, seed) -> None:
    await _popular_catalogue(seed)
    newcomer = await seed.account("newcomer@school.test")

    result = await RecommendationService(store).generate_recommendations(newcomer.id, limit=10)

    assert result.triggered is True
    assert result.recommendations
    reasons = {RecommendationReason(r.reason) for r in result.recommendations}
    assert reasons <= {RecommendationReason.POPULAR, RecommendationReason.TRENDING}


async def test_generation_never_duplicates_active_pairs(store, seed, db) -> None:
    await _popular_catalogue(seed)
    user = await seed.account("newcomer@school.test")
    service = RecommendationService(store)

    await service.generate_recommendations(user.id, limit=10)
    await service.generate_recommendations(user.id, limit=10)

    assert await _active_duplicates(db, user.id) == 0


async def test_duplicate_manual_recommendation_is_a_conflict(store, seed) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = RecommendationService(store)

    user_id, content_id = user.id, content.id

    await service.create_recommendation(user_id, content_id, 0.5, RecommendationReason.POPULAR)
    with pytest.raises(ConflictError) as exc:
        await service.create_recommendation(user_id, content_id, 0.9, RecommendationReason.TRENDING)
    assert exc.value.code == "DUPLICATE_RECOMMENDATION"

    assert await store.create_recommendation(user_id, content_id, 0.1, RecommendationReason.POPULAR.value) is None


async def test_returned_list_is_capped_at_limit(store, seed) -> None:
    await _popular_catalogue(seed, count=6)
    user = await seed.account("newcomer@school.test")

    result = await RecommendationService(store).generate_recommendations(user.id, limit=2)

    assert len(result.recommendations) <= 2


async def test_generation_skipped_when_enough_active(store, seed) -> None:
    items = await _popular_catalogue(seed)
    user = await seed.account("newcomer@school.test")
    service = RecommendationService(store)
    for item in items[:3]:
        await service.create_recommendation(user.id, item.id, 0.3, RecommendationReason.POPULAR)

    result = await service.generate_recommendations(user.id, limit=3)

    assert result.triggered is False
    assert result.created == 0
    assert len(result.recommendations) == 3


async def test_strategies_use_similarity_interest_assessment_and_colleagues(store, seed, db) -> None:
    org = await seed.organization()
    user = await seed.account("senco@school.test", organization_id=org.id)
    colleague = await seed.account("colleague@school.test", organization_id=org.id)
    seen = await seed.content("Working memory strategies")
    similar = await seed.content("Working memory interventions")
    interesting = await seed.content("Dyscalculia toolkit")
    remedial = await seed.content("Phonological awareness games")
    shared = await seed.content("Emotion coaching")

    await seed.interaction(user, seen)
    await store.upsert_content_similarity(seen.id, similar.id, 0.6, "CONTENT_BASED")
    db.add(UserInterest(user_id=user.id, interest_area="dyscalculia", confidence=0.8, source="EXPLICIT"))
    db.add(UserInterest(user_id=user.id, interest_area="   ", confidence=0.9, source="EXPLICIT"))
    result_row = AssessmentResult(user_id=user.id, assessment_id="phonics-screen", score=12.0)
    db.add(result_row)
    await db.flush()
    db.add(AssessmentContentLink(assessment_result_id=result_row.id, content_id=remedial.id, relevance_score=0.7))
    await seed.interaction(
        colleague,
        shared,
        InteractionType.BOOKMARK,
        bookmarked=True,
        created_at=utcnow() - timedelta(days=60),
    )
    await db.commit()

    result = await RecommendationService(store).generate_recommendations(user.id, limit=20)

    by_content = {r.content_id: r for r in result.recommendations}
    assert by_content[similar.id].reason == RecommendationReason.SIMILAR_CONTENT.value
    assert by_content[similar.id].score == pytest.approx(0.6)
    assert by_content[interesting.id].reason == RecommendationReason.USER_INTEREST.value
    assert by_content[interesting.id].score == pytest.approx(0.8)
    assert by_content[remedial.id].reason == RecommendationReason.ASSESSMENT_BASED.value
    assert by_content[shared.id].reason == RecommendationReason.COLLEAGUE_USED.value
    assert by_content[shared.id].score == pytest.approx(0.1)


async def test_failing_strategy_is_skipped(store, seed, monkeypatch) -> None:
    await _popular_catalogue(seed)
    user = await seed.account("newcomer@school.test")
    service = RecommendationService(store)

    async def boom(user_id: int, quota: int):
        raise RuntimeError("search backend down")

    monkeypatch.setattr(service, "_interest", boom)
    result = await service.generate_recommendations(user.id, limit=5)

    assert result.triggered is True
    assert result.recommendations


async def test_status_transitions_are_monotonic(store, seed) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = RecommendationService(store)
    rec = await service.create_recommendation(user.id, content.id, 0.5, RecommendationReason.POPULAR)
    # failed transitions roll back and expire loaded rows
    user_id, rec_id = user.id, rec.id

    noted = await service.update_recommendation_status(user.id, rec.id, RecommendationStatus.ACTIVE, notes="later")
    assert noted.status == RecommendationStatus.ACTIVE.value
    assert noted.notes == "later"

    clicked = await service.mark_clicked(user.id, rec.id)
    assert clicked.status == RecommendationStatus.CLICKED.value
    assert clicked.clicked_at is not None

    for status in (RecommendationStatus.DISMISSED, RecommendationStatus.ACTIVE, RecommendationStatus.EXPIRED):
        with pytest.raises(ConflictError) as exc:
            await service.update_recommendation_status(user_id, rec_id, status)
        assert exc.value.code == "INVALID_STATUS_TRANSITION"

    assert (await service.get_recommendation(user_id, rec_id)).status == RecommendationStatus.CLICKED.value


async def test_unknown_or_foreign_recommendation_is_not_found(store, seed) -> None:
    owner = await seed.account("owner@school.test")
    stranger = await seed.account("stranger@school.test")
    content = await seed.content("Precision teaching")
    service = RecommendationService(store)
    rec = await service.create_recommendation(owner.id, content.id, 0.5, RecommendationReason.POPULAR)
    owner_id = owner.id

    with pytest.raises(NotFoundError):
        await service.mark_dismissed(stranger.id, rec.id)
    with pytest.raises(NotFoundError):
        await service.get_recommendation(owner_id, 9999)


async def test_stale_recommendations_expire_before_generation(store, seed, db) -> None:
    await _popular_catalogue(seed)
    user = await seed.account("newcomer@school.test")
    content = await seed.content("Old suggestion")
    stale = Recommendation(
        user_id=user.id,
        content_id=content.id,
        score=0.2,
        reason=RecommendationReason.POPULAR.value,
        status=RecommendationStatus.ACTIVE.value,
        created_at=utcnow() - timedelta(days=45),
    )
    db.add(stale)
    await db.commit()

    result = await RecommendationService(store).generate_recommendations(user.id, limit=5)

    assert result.expired == 1
    await db.refresh(stale)
    assert stale.status == RecommendationStatus.EXPIRED.value
    assert stale.id not in {r.id for r in result.recommendations}


async def test_expire_stale_sweeps_every_user(store, seed, db) -> None:
    content = await seed.content("Old suggestion")
    users = [await seed.account(f"user{i}@school.test") for i in range(2)]
    for user in users:
        db.add(
            Recommendation(
                user_id=user.id,
                content_id=content.id,
                score=0.2,
                reason=RecommendationReason.TRENDING.value,
                created_at=utcnow() - timedelta(days=31),
            )
        )
    await db.commit()

    assert await RecommendationService(store).expire_stale() == 2
    assert await RecommendationService(store).expire_stale() == 0


async def test_negative_feedback_dismisses_and_feeds_stats(store, seed) -> None:
    user = await seed.account("senco@school.test")
    first = await seed.content("Precision teaching")
    second = await seed.content("Social stories")
    service = RecommendationService(store)
    rec = await service.create_recommendation(user.id, first.id, 0.5, RecommendationReason.POPULAR)
    other = await service.create_recommendation(user.id, second.id, 0.4, RecommendationReason.POPULAR)

    feedback = await service.process_recommendation_feedback(user.id, rec.id, False, "not relevant to my pupils")
    assert feedback.is_relevant is False
    assert (await service.get_recommendation(user.id, rec.id)).status == RecommendationStatus.DISMISSED.value

    await service.mark_clicked(user.id, other.id)
    await service.process_recommendation_feedback(user.id, other.id, True)

    stats = await service.get_effectiveness_stats(user.id)
    assert len(stats) == 1
    assert stats[0].reason is RecommendationReason.POPULAR
    assert stats[0].total == 2
    assert stats[0].click_rate == 0.5
    assert stats[0].dismiss_rate == 0.5
    assert stats[0].mean_relevance == pytest.approx(0.5)


async def test_listing_filters(store, seed) -> None:
    user = await seed.account("senco@school.test")
    article = await seed.content("Precision teaching")
    video = await seed.content("Emotion coaching", content_type="video")
    service = RecommendationService(store)
    await service.create_recommendation(user.id, article.id, 0.9, RecommendationReason.POPULAR)
    await service.create_recommendation(user.id, video.id, 0.2, RecommendationReason.TRENDING)

    rows, total = await service.get_user_recommendations(user.id, RecommendationFilter(content_type="video"))
    assert total == 1
    assert rows[0].content_id == video.id

    rows, total = await service.get_user_recommendations(user.id, RecommendationFilter(min_score=0.5))
    assert [r.content_id for r in rows] == [article.id]

    rows, total = await service.get_user_recommendations(user.id, RecommendationFilter(limit=1))
    assert total == 2
    assert len(rows) == 1
    assert rows[0].content_id == article.id


async def test_delete_recommendation(store, seed) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = RecommendationService(store)
    rec = await service.create_recommendation(user.id, content.id, 0.5, RecommendationReason.POPULAR)

    await service.delete_recommendation(user.id, rec.id)

    with pytest.raises(NotFoundError):
        await service.get_recommendation(user.id, rec.id)


async def test_generation_accepts_limits_above_listing_cap(store, seed) -> None:
    await _popular_catalogue(seed)
    user = await seed.account("newcomer@school.test")

    result = await RecommendationService(store).generate_recommendations(user.id, limit=250)

    assert result.triggered is True
    assert 0 < len(result.recommendations) <= 250
    assert RecommendationFilter(limit=500).limit == 500


async def test_storage_error_in_strategy_rolls_back_generation(store, seed, db, monkeypatch) -> None:
    await _popular_catalogue(seed)
    user = await seed.account("newcomer@school.test")
    user_id = user.id
    service = RecommendationService(store)

    async def unavailable(*args, **kwargs):
        raise StorageError("Storage call exceeded 0.01s")

    # colleague lookups run after popularity has already inserted rows
    monkeypatch.setattr(store, "get_account", unavailable)

    with pytest.raises(StorageError):
        await service.generate_recommendations(user_id, limit=10)

    count = await db.scalar(select(func.count(Recommendation.id)).where(Recommendation.user_id == user_id))
    assert count == 0


async def test_slow_storage_call_becomes_storage_error(db) -> None:
    slow = RecommendationStore(db, timeout=0.01)

    with pytest.raises(StorageError) as exc:
        await slow._run(asyncio.sleep(1))
    assert isinstance(exc.value.__cause__, TimeoutError)


async def test_describe_joins_content_fields(store, seed) -> None:
    user = await seed.account("senco@school.test")
    video = await seed.content("Emotion coaching", description="Short clips for staff", content_type="video")
    service = RecommendationService(store)
    rec = await service.create_recommendation(user.id, video.id, 0.4, RecommendationReason.POPULAR)

    [described] = await service.describe([rec])

    assert described.id == rec.id
    assert described.content_title == "Emotion coaching"
    assert described.content_type == "video"
    assert described.content_description == "Short clips for staff"


async def test_content_search_treats_wildcards_literally(store, seed) -> None:
    underscored = await seed.content("K_12 planning")
    await seed.content("K112 reading")
    percent = await seed.content("Attendance at 100%")
    await seed.content("Attendance at 1000 schools")

    assert [c.id for c in await store.search_contents("K_12")] == [underscored.id]
    assert [c.id for c in await store.search_contents("100%")] == [percent.id]
    assert await store.search_contents("%") == [percent]
