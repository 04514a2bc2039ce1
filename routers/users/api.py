from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth import Principal
from core.activity import ActivityTracker
from core.cache import CacheService, with_cache
from core.cache_keys import USERS
from core.cache_warming import CacheWarmer
from db import get_db, get_db_context
from routers.dependencies import (
    api_rate_limit,
    get_activity_tracker,
    get_admin_user,
    get_cache,
    get_major_admin_user,
    get_warmer,
    require_internal_request,
)

from . import service
from .schemas import ActivityUpdateRequest, UserCreate, UserUpdate

router = APIRouter(prefix="/api/users", tags=["Users"], dependencies=[Depends(api_rate_limit)])


def _include_activity(request: Request) -> bool:
    return request.query_params.get("include_activity") == "true"


async def _users_producer(request: Request) -> JSONResponse:
    tracker = request.app.state.activity_tracker if _include_activity(request) else None
    with get_db_context() as db:
        body = service.users_listing(
            db,
            role=request.query_params.get("role"),
            is_active=request.query_params.get("is_active"),
            tracker=tracker,
        )
    return JSONResponse(body)


cached_users = with_cache(
    _users_producer,
    resource=USERS,
    skip_cache=lambda request: _include_activity(request) or request.query_params.get("refresh") == "true",
)


@router.get("")
async def list_users(
    request: Request,
    role: Optional[str] = None,
    is_active: Optional[str] = None,
    include_activity: bool = False,
    refresh: bool = False,
    user: Principal = Depends(get_admin_user),
):
    return await cached_users(request)


@router.post("")
async def create_user(
    payload: UserCreate,
    user: Principal = Depends(get_admin_user),
    db: Session = Depends(get_db),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.create_user(db, warmer, user, payload)


@router.get("/metrics")
async def users_metrics(
    refresh: bool = False,
    user: Principal = Depends(get_admin_user),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    return await service.users_metrics(db, cache, refresh=refresh)


@router.post("/update-activity")
async def update_activity(
    payload: ActivityUpdateRequest,
    system: Principal = Depends(require_internal_request),
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_activity_tracker),
    cache: CacheService = Depends(get_cache),
):
    return await service.update_activity(db, tracker, cache, payload.user_id)


@router.get("/update-activity")
async def activity_summary(
    system: Principal = Depends(require_internal_request),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    return {"success": True, **tracker.activity_summary()}


@router.get("/{user_id}/activity")
async def user_activity(
    user_id: str,
    user: Principal = Depends(get_admin_user),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    return await service.user_activity(db, cache, tracker, user_id)


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    user: Principal = Depends(get_admin_user),
    db: Session = Depends(get_db),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.update_user(db, warmer, user, user_id, payload)


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    user: Principal = Depends(get_major_admin_user),
    db: Session = Depends(get_db),
    warmer: CacheWarmer = Depends(get_warmer),
    tracker: ActivityTracker = Depends(get_activity_tracker),
):
    return await service.delete_user(db, warmer, tracker, user, user_id)
