from __future__ import annotations

from fastapi import Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import ORJSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ServiceResponse, http_status_for
from app.db.session import get_db
from app.db.store import RecommendationStore


async def get_store(db: AsyncSession = Depends(get_db)) -> RecommendationStore:
    return RecommendationStore(db)


def envelope(response: ServiceResponse) -> ORJSONResponse:
    status_code = 200 if response.success else http_status_for(response.code)
    return ORJSONResponse(status_code=status_code, content=jsonable_encoder(response))
