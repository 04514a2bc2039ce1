"""Cache administration service layer."""

import logging
from typing import Optional

from fastapi import HTTPException

from auth import Principal
from core import invalidation
from core.activity import ActivityTracker
from core.cache import CacheService
from core.cache_keys import get_resource, registered_resources
from core.cache_warming import CacheWarmer
from utils.logging_helpers import log_info, log_warning

logger = logging.getLogger(__name__)


async def cache_stats(cache: CacheService, warmer: CacheWarmer, tracker: ActivityTracker) -> dict:
    keys = {}
    for name, resource in registered_resources().items():
        try:
            keys[name] = len(await cache.store.keys(resource.pattern()))
        except Exception as exc:
            log_warning(logger, "Cache key count failed", resource=name, error=repr(exc))
            keys[name] = None
    return {
        **cache.stats(),
        "keys": keys,
        "pending_warm_tasks": warmer.pending,
        "tracked_users": tracker.tracked_users_count(),
    }


async def invalidate(cache: CacheService, user: Principal, resource_name: Optional[str]) -> dict:
    if resource_name:
        try:
            resource = get_resource(resource_name)
        except ValueError:
            raise HTTPException(status_code=404, detail=f"Unknown cache resource: {resource_name}")
        result = await invalidation.invalidate_resource(cache, resource)
    else:
        result = await invalidation.invalidate_all(cache)
    log_info(logger, "Manual cache invalidation", user_id=user.user_id, resource=resource_name or "*")
    return {"success": True, "cache": result.as_dict()}
