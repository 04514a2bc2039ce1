from fastapi import APIRouter, Depends

from auth import Principal
from core.activity import ActivityTracker
from core.cache import CacheService
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_activity_tracker, get_admin_user, get_cache, get_warmer

from . import service
from .schemas import CacheInvalidateRequest

router = APIRouter(prefix="/api/cache", tags=["Cache"], dependencies=[Depends(api_rate_limit)])


@router.get("/stats")
async def cache_stats(
    user: Principal = Depends(get_admin_user),
    cache: CacheService = Depends(get_cache),
    warmer: CacheWarmer = Depends(get_warmer),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    return await service.cache_stats(cache, warmer, tracker)


@router.post("/invalidate")
async def invalidate_cache(
    payload: CacheInvalidateRequest,
    user: Principal = Depends(get_admin_user),
    cache: CacheService = Depends(get_cache),
):
    return await service.invalidate(cache, user, payload.resource)
