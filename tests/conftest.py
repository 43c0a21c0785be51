from __future__ import annotations

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "0")
os.environ.setdefault("JWT_SECRET", "test-signing-key-that-is-long-enough-for-hs256")

from collections.abc import AsyncIterator  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.db.store import RecommendationStore  # noqa: E402
from app.models.account import Account, Organization  # noqa: E402
from app.models.content import Content, ContentTag, Tag  # noqa: E402
from app.models.enums import InteractionType  # noqa: E402
from app.models.interaction import ContentInteraction  # noqa: E402


@pytest.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def store(db: AsyncSession) -> RecommendationStore:
    return RecommendationStore(db)


class Seeder:
    """Small helpers for building fixtures row by row; each call commits."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _save(self, row):
        self.db.add(row)
        await self.db.commit()
        return row

    async def organization(self, name: str = "Northfield Psychology Service") -> Organization:
        return await self._save(Organization(name=name))

    async def account(self, email: str, organization_id: int | None = None) -> Account:
        return await self._save(Account(email=email, display_name=email.split("@")[0], organization_id=organization_id))

    async def content(self, title: str, description: str = "", content_type: str = "article") -> Content:
        return await self._save(Content(title=title, description=description, content_type=content_type))

    async def tag(self, name: str) -> Tag:
        return await self._save(Tag(name=name))

    async def tag_content(self, content: Content, *tags: Tag) -> None:
        for tag in tags:
            self.db.add(ContentTag(content_id=content.id, tag_id=tag.id))
        await self.db.commit()

    async def interaction(
        self,
        user: Account,
        content: Content,
        interaction_type: InteractionType = InteractionType.VIEW,
        **extra,
    ) -> ContentInteraction:
        return await self._save(
            ContentInteraction(
                user_id=user.id,
                content_id=content.id,
                interaction_type=interaction_type.value,
                **extra,
            )
        )


@pytest.fixture()
def seed(db: AsyncSession) -> Seeder:
    return Seeder(db)
