from fastapi import APIRouter

from app.api.v1.contents import router as contents_router
from app.api.v1.interactions import router as interactions_router
from app.api.v1.preferences import router as preferences_router
from app.api.v1.recommendations import router as recommendations_router
from app.api.v1.research import router as research_router

api_router = APIRouter()
api_router.include_router(recommendations_router)
api_router.include_router(interactions_router)
api_router.include_router(contents_router)
api_router.include_router(preferences_router)
api_router.include_router(research_router)
