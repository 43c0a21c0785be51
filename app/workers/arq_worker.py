from __future__ import annotations

import logging
from datetime import timedelta

from arq.connections import RedisSettings
from arq.cron import cron

from app.core.config import settings
from app.core.errors import ServiceError
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.db.store import RecommendationStore
from app.models.common import utcnow
from app.services.recommendations import RecommendationService
from app.services.similarity import SimilarityService

logger = logging.getLogger(__name__)


async def startup(ctx) -> None:
    configure_logging()


async def expire_recommendations_job(ctx) -> dict:
    async with SessionLocal() as db:
        expired = await RecommendationService(RecommendationStore(db)).expire_stale()
    return {"expired": expired}


async def recompute_similarity_job(ctx, content_id: int) -> dict:
    async with SessionLocal() as db:
        result = await SimilarityService(RecommendationStore(db)).analyze_content_similarity(content_id)
    return {
        "content_id": content_id,
        "content_based": len(result.content_based),
        "tag_based": len(result.tag_based),
        "collaborative": len(result.collaborative),
    }


async def recompute_recent_similarity_job(ctx) -> dict:
    since = utcnow() - timedelta(hours=settings.similarity_recompute_lookback_hours)
    recomputed = 0
    failed = 0
    async with SessionLocal() as db:
        store = RecommendationStore(db)
        service = SimilarityService(store)
        for content_id in await store.get_content_touched_since(since):
            try:
                await service.analyze_content_similarity(content_id)
                recomputed += 1
            except ServiceError as exc:
                logger.warning("Similarity recompute failed for content=%s: %s", content_id, exc.message)
                failed += 1
    return {"recomputed": recomputed, "failed": failed}


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    on_startup = startup
    functions = [expire_recommendations_job, recompute_similarity_job, recompute_recent_similarity_job]
    cron_jobs = [
        cron(expire_recommendations_job, minute={0}),
        cron(recompute_recent_similarity_job, hour={3}, minute={30}),
    ]
