"""
HTTP routes for the Splan API.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from splan.ai_routes import router as ai_router
from splan.auth_routes import router as auth_router
from splan.auth_routes import users_router
from splan.cache import Cache
from splan.dependencies import get_cache
from splan.planning_routes import (
    analytics_router,
    goals_router,
    sprints_router,
    tasks_router,
)
from splan.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(cache: Cache = Depends(get_cache)):
    return HealthResponse(message="healthy", cache=cache.stats())


router.include_router(auth_router)
router.include_router(users_router)
router.include_router(goals_router)
router.include_router(sprints_router)
router.include_router(tasks_router)
router.include_router(analytics_router)
router.include_router(ai_router)
