import pytest

from app.core.errors import NotFoundError, ValidationError
from app.models.content import Category
from app.schemas.preference import UserPreferenceBulkItem, UserPreferenceIn, UserPreferenceUpdate
from app.services.preferences import UserPreferenceService


async def _category(db, name: str) -> int:
    row = Category(name=name)
    db.add(row)
    await db.commit()
    return row.id


async def test_create_and_filter_preferences(store, seed, db) -> None:
    user = await seed.account("senco@school.test")
    tag = await seed.tag("phonics")
    category_id = await _category(db, "Literacy")
    user_id, tag_id = user.id, tag.id
    service = UserPreferenceService(store)

    by_tag = await service.create_preference(user_id, UserPreferenceIn(tag_id=tag_id, weight=0.5))
    by_category = await service.create_preference(user_id, UserPreferenceIn(category_id=category_id, weight=2.0))
    by_type = await service.create_preference(user_id, UserPreferenceIn(content_type="video"))

    assert [p.id for p in await service.get_user_preferences(user_id)] == [by_category.id, by_type.id, by_tag.id]
    assert [p.id for p in await service.get_user_tag_preferences(user_id, tag_id)] == [by_tag.id]
    assert [p.id for p in await service.get_user_category_preferences(user_id, category_id)] == [by_category.id]
    assert [p.id for p in await service.get_user_content_type_preferences(user_id, "video")] == [by_type.id]

    other = await seed.account("other@school.test")
    assert await service.get_user_preferences(other.id) == []


async def test_preference_targets_are_checked(store, seed) -> None:
    user = await seed.account("senco@school.test")
    user_id = user.id
    service = UserPreferenceService(store)

    with pytest.raises(ValidationError) as exc:
        await service.create_preference(user_id, UserPreferenceIn())
    assert exc.value.code == "INVALID_PREFERENCE_TARGET"

    with pytest.raises(NotFoundError) as exc:
        await service.create_preference(user_id, UserPreferenceIn(tag_id=404))
    assert exc.value.code == "TAG_NOT_FOUND"

    with pytest.raises(NotFoundError) as exc:
        await service.create_preference(user_id, UserPreferenceIn(category_id=404))
    assert exc.value.code == "CATEGORY_NOT_FOUND"

    assert await service.get_user_preferences(user_id) == []


async def test_update_and_delete_preference(store, seed) -> None:
    owner = await seed.account("owner@school.test")
    stranger = await seed.account("stranger@school.test")
    owner_id, stranger_id = owner.id, stranger.id
    service = UserPreferenceService(store)
    pref = await service.create_preference(owner_id, UserPreferenceIn(content_type="article"))
    pref_id = pref.id

    updated = await service.update_preference(owner_id, pref_id, UserPreferenceUpdate(weight=3.0))
    assert updated.weight == 3.0
    assert updated.content_type == "article"

    with pytest.raises(ValidationError) as exc:
        await service.update_preference(owner_id, pref_id, UserPreferenceUpdate(content_type=None))
    assert exc.value.code == "INVALID_PREFERENCE_TARGET"

    with pytest.raises(NotFoundError) as exc:
        await service.update_preference(stranger_id, pref_id, UserPreferenceUpdate(weight=1.0))
    assert exc.value.code == "PREFERENCE_NOT_FOUND"

    await service.delete_preference(owner_id, pref_id)
    assert await service.get_user_preferences(owner_id) == []


async def test_bulk_update_is_all_or_nothing(store, seed) -> None:
    user = await seed.account("senco@school.test")
    user_id = user.id
    service = UserPreferenceService(store)
    first = await service.create_preference(user_id, UserPreferenceIn(content_type="article", weight=1.0))
    second = await service.create_preference(user_id, UserPreferenceIn(content_type="video", weight=1.0))
    first_id, second_id = first.id, second.id

    with pytest.raises(NotFoundError):
        await service.bulk_update_preferences(
            user_id,
            [UserPreferenceBulkItem(id=first_id, weight=5.0), UserPreferenceBulkItem(id=9999, weight=5.0)],
        )
    assert {p.id: p.weight for p in await service.get_user_preferences(user_id)} == {first_id: 1.0, second_id: 1.0}

    rows = await service.bulk_update_preferences(
        user_id,
        [UserPreferenceBulkItem(id=first_id, weight=4.0), UserPreferenceBulkItem(id=second_id, content_type="podcast")],
    )
    assert [(r.id, r.weight, r.content_type) for r in rows] == [(first_id, 4.0, "article"), (second_id, 1.0, "podcast")]


async def test_increment_preference_weight(store, seed) -> None:
    user = await seed.account("senco@school.test")
    user_id = user.id
    service = UserPreferenceService(store)
    pref = await service.create_preference(user_id, UserPreferenceIn(content_type="video", weight=0.5))
    pref_id = pref.id

    bumped = await service.increment_preference_weight(user_id, pref_id)
    assert bumped.weight == pytest.approx(0.6)

    lowered = await service.increment_preference_weight(user_id, pref_id, -0.6)
    assert lowered.weight == pytest.approx(0.0)

    with pytest.raises(ValidationError) as exc:
        await service.increment_preference_weight(user_id, pref_id, -0.5)
    assert exc.value.code == "INVALID_PREFERENCE_WEIGHT"

    with pytest.raises(ValidationError):
        await service.increment_preference_weight(user_id, pref_id, float("nan"))


async def test_preference_analytics(store, seed, db) -> None:
    user = await seed.account("senco@school.test")
    tag = await seed.tag("phonics")
    category_id = await _category(db, "Literacy")
    user_id, tag_id = user.id, tag.id
    service = UserPreferenceService(store)
    await service.create_preference(user_id, UserPreferenceIn(tag_id=tag_id, weight=0.5))
    await service.create_preference(user_id, UserPreferenceIn(tag_id=tag_id, content_type="video", weight=1.5))
    await service.create_preference(user_id, UserPreferenceIn(category_id=category_id, weight=2.0))

    analytics = await service.get_user_preference_analytics(user_id)

    assert analytics.total == 3
    assert [(b.key, b.count, b.total_weight) for b in analytics.tag_preferences] == [(tag_id, 2, 2.0)]
    assert [(b.key, b.count) for b in analytics.category_preferences] == [(category_id, 1)]
    assert [(b.key, b.total_weight) for b in analytics.content_type_preferences] == [("video", 1.5)]
