import logging

from fastapi import APIRouter, Depends

from auth import Principal
from core.activity import ActivityTracker
from core.cache_warming import CacheWarmer
from routers.dependencies import cron_rate_limit, get_activity_tracker, get_warmer, require_internal_request
from utils.dates import now_local

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["Cron"], dependencies=[Depends(cron_rate_limit)])


@router.post("/weekly-inventory")
async def weekly_inventory(
    system: Principal = Depends(require_internal_request),
    warmer: CacheWarmer = Depends(get_warmer),
):
    now = now_local()
    report = await warmer.invalidate_and_warm_inventory(wait=True)
    logger.info(f"CRON weekly-inventory | warming={report.warming} | removed={report.invalidation.removed}")
    return {"success": True, "year": now.year, "month": now.month, "cache": report.as_dict()}


@router.post("/activity-sweep")
async def activity_sweep(
    system: Principal = Depends(require_internal_request),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    removed = tracker.sweep()
    return {"success": True, "removed": removed, "tracked_users": tracker.tracked_users_count()}
