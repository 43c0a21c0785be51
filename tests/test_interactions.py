import pytest
from sqlalchemy import func, select

from app.core.errors import NotFoundError, ValidationError
from app.models.enums import InteractionType
from app.models.interaction import ContentInteraction
from app.schemas.interaction import InteractionDetails
from app.services.interactions import InteractionService


async def _count(db, user_id: int, content_id: int, kind: InteractionType) -> int:
    stmt = select(func.count(ContentInteraction.id)).where(
        ContentInteraction.user_id == user_id,
        ContentInteraction.content_id == content_id,
        ContentInteraction.interaction_type == kind.value,
    )
    return (await db.execute(stmt)).scalar_one()


async def test_record_view_and_read(store, seed) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = InteractionService(store)

    view = await service.record_view(user.id, content.id)
    read = await service.record_read(user.id, content.id, duration_seconds=240, completion_percentage=80)

    assert view.interaction_type == InteractionType.VIEW.value
    assert read.duration_seconds == 240
    assert read.completion_percentage == 80
    assert read.rating is None


async def test_record_interaction_rejects_unknown_content(store, seed) -> None:
    user = await seed.account("senco@school.test")
    with pytest.raises(NotFoundError) as exc:
        await InteractionService(store).record_view(user.id, 404)
    assert exc.value.code == "CONTENT_NOT_FOUND"


@pytest.mark.parametrize(
    ("kind", "details"),
    [
        (InteractionType.READ, InteractionDetails(completion_percentage=150)),
        (InteractionType.VIEW, InteractionDetails(rating=4)),
        (InteractionType.RATE, InteractionDetails()),
    ],
)
async def test_record_interaction_validates_details(store, seed, kind, details) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    with pytest.raises(ValidationError):
        await InteractionService(store).record_interaction(user.id, content.id, kind, details)


async def test_bookmark_toggle_round_trip(store, seed, db) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = InteractionService(store)

    bookmarked, row = await service.toggle_bookmark(user.id, content.id)
    assert bookmarked is True
    assert row.bookmarked is True
    assert await _count(db, user.id, content.id, InteractionType.BOOKMARK) == 1

    bookmarked, _ = await service.toggle_bookmark(user.id, content.id)
    assert bookmarked is False
    assert await _count(db, user.id, content.id, InteractionType.BOOKMARK) == 0

    bookmarked, _ = await service.toggle_bookmark(user.id, content.id)
    assert bookmarked is True
    assert await _count(db, user.id, content.id, InteractionType.BOOKMARK) == 1


async def test_recording_bookmark_twice_keeps_one_row(store, seed, db) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = InteractionService(store)

    first = await service.record_interaction(user.id, content.id, InteractionType.BOOKMARK)
    second = await service.record_interaction(user.id, content.id, InteractionType.BOOKMARK)

    assert first.id == second.id
    assert await _count(db, user.id, content.id, InteractionType.BOOKMARK) == 1


async def test_unique_index_rejects_second_bookmark_insert(store, seed) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")

    first = await store.create_exclusive_interaction(user.id, content.id, InteractionType.BOOKMARK, bookmarked=True)
    second = await store.create_exclusive_interaction(user.id, content.id, InteractionType.BOOKMARK, bookmarked=True)

    assert first is not None
    assert second is None


@pytest.mark.parametrize("rating", [0, 6, 3.5, True, "4"])
async def test_rate_content_rejects_invalid_ratings(store, seed, rating) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    with pytest.raises(ValidationError):
        await InteractionService(store).rate_content(user.id, content.id, rating)


async def test_rating_again_updates_the_same_row(store, seed, db) -> None:
    user = await seed.account("senco@school.test")
    content = await seed.content("Precision teaching")
    service = InteractionService(store)

    first = await service.rate_content(user.id, content.id, 4)
    second = await service.rate_content(user.id, content.id, 2)

    assert first.id == second.id
    assert second.rating == 2
    assert await _count(db, user.id, content.id, InteractionType.RATE) == 1


async def test_popularity_stats_and_most_popular(store, seed) -> None:
    alice = await seed.account("alice@school.test")
    bob = await seed.account("bob@school.test")
    popular = await seed.content("Precision teaching")
    quiet = await seed.content("Social stories")
    service = InteractionService(store)

    await service.record_view(alice.id, popular.id)
    await service.record_view(bob.id, popular.id)
    await service.record_download(alice.id, popular.id)
    await service.toggle_bookmark(bob.id, popular.id)
    await service.rate_content(alice.id, popular.id, 4)
    await service.rate_content(bob.id, popular.id, 2)
    await service.record_share(alice.id, quiet.id)

    stats = await service.get_content_popularity_stats(popular.id)
    assert stats.view_count == 2
    assert stats.download_count == 1
    assert stats.bookmark_count == 1
    assert stats.share_count == 0
    assert stats.average_rating == 3.0
    assert stats.total_interactions == 6

    empty = await service.get_content_popularity_stats(999)
    assert empty.total_interactions == 0
    assert empty.average_rating == 0.0

    ranked = await service.get_most_popular_content(limit=5)
    assert [(r.content_id, r.interaction_count) for r in ranked] == [(popular.id, 6), (quiet.id, 1)]

    ratings = await service.get_content_interactions_by_type(popular.id, InteractionType.RATE)
    assert sorted(r.rating for r in ratings) == [2, 4]
    shares = await service.get_user_interactions_by_type(alice.id, InteractionType.SHARE)
    assert [s.content_id for s in shares] == [quiet.id]
