"""Users service layer."""

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from auth import Principal
from core import invalidation
from core.activity import ActivityTracker
from core.cache import CacheService
from core.cache_keys import DASHBOARD_USERS, USER_ACTIVITY
from core.cache_warming import CacheWarmer
from models import User
from utils.logging_helpers import log_info

from . import repository
from .schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    lowered = value.lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise HTTPException(status_code=400, detail="is_active must be true or false")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "last_login": _iso(user.last_login),
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def activity_status_dict(tracker: ActivityTracker, user_id: str) -> dict:
    status = tracker.get_activity_status(user_id)
    return {
        "last_update": status.last_update,
        "is_pending": status.is_pending,
        "next_update_available": status.next_update_available,
    }


def users_listing(
    db: Session,
    *,
    role: Optional[str],
    is_active: Optional[str],
    tracker: Optional[ActivityTracker] = None,
) -> dict:
    users = [user_to_dict(u) for u in repository.list_users(db, role=role or None, is_active=parse_bool(is_active))]
    if tracker is not None:
        for user in users:
            user["activity"] = activity_status_dict(tracker, user["id"])
    return {"users": users, "total": len(users)}


async def users_metrics(db: Session, cache: CacheService, *, refresh: bool = False) -> dict:
    async def producer():
        return repository.user_metrics(db, now=datetime.utcnow())

    result = await cache.get_or_set(DASHBOARD_USERS, {}, producer, skip_cache=refresh)
    return {**result.value, "cached": result.hit}


async def user_activity(db: Session, cache: CacheService, tracker: ActivityTracker, user_id: str) -> dict:
    async def producer():
        user = repository.get_user_by_id(db, user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="Usuario no encontrado")
        return {"user_id": user.id, "last_login": _iso(user.last_login), "is_active": user.is_active}

    result = await cache.get_or_set(USER_ACTIVITY, {"user_id": user_id}, producer)
    # Tracker state is read live, never cached.
    return {**result.value, "tracker": activity_status_dict(tracker, user_id), "cached": result.hit}


async def create_user(db: Session, warmer: CacheWarmer, actor: Principal, payload: UserCreate) -> dict:
    if repository.get_user_by_email(db, payload.email):
        raise HTTPException(status_code=409, detail="Ya existe un usuario con ese email")
    user = repository.create_user(
        db, name=payload.name, email=payload.email, role=payload.role, is_active=payload.is_active
    )
    report = await warmer.invalidate_and_warm_users()
    log_info(logger, "User created", user_id=actor.user_id, created=user.id, role=user.role)
    return {"success": True, "user": user_to_dict(user), "cache": report.as_dict()}


async def update_user(db: Session, warmer: CacheWarmer, actor: Principal, user_id: str, payload: UserUpdate) -> dict:
    user = repository.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    user = repository.update_user(db, user, **changes)
    report = await warmer.invalidate_and_warm_users()
    log_info(logger, "User updated", user_id=actor.user_id, updated=user.id, fields=",".join(sorted(changes)))
    return {"success": True, "user": user_to_dict(user), "cache": report.as_dict()}


async def delete_user(
    db: Session, warmer: CacheWarmer, tracker: ActivityTracker, actor: Principal, user_id: str
) -> dict:
    user = repository.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="Usuario no encontrado")
    repository.delete_user(db, user)
    tracker.clear_user_activity(user_id)
    report = await warmer.invalidate_and_warm_users()
    log_info(logger, "User deleted", user_id=actor.user_id, deleted=user_id)
    return {"success": True, "message": "Usuario eliminado", "cache": report.as_dict()}


async def update_activity(db: Session, tracker: ActivityTracker, cache: CacheService, user_id: str) -> dict:
    # Throttled calls never reach the database.
    if not tracker.should_update_activity(user_id):
        status = tracker.get_activity_status(user_id)
        return {
            "success": False,
            "throttled": True,
            "message": "Actualización de actividad limitada",
            "next_update_in_minutes": math.ceil(status.seconds_until_next_update / 60),
        }

    user = repository.get_user_by_id(db, user_id)
    if user is None:
        tracker.clear_user_activity(user_id)
        raise HTTPException(status_code=404, detail="Usuario no encontrado")

    # A failed write leaves the record pending until the window elapses.
    user = repository.touch_last_login(db, user, datetime.utcnow())
    tracker.mark_activity_updated(user_id)
    result = await invalidation.invalidate_user_activity_cache(cache, user_id)
    return {
        "success": True,
        "throttled": False,
        "last_login": _iso(user.last_login),
        "cache_invalidated": result.ok,
    }
