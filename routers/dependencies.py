import logging
from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from auth import Principal, SYSTEM_PRINCIPAL, bearer_token, decode_access_token, is_internal_request
from core.activity import ActivityTracker
from core.cache import CacheService
from core.cache_warming import CacheWarmer
from core.rate_limit import rate_limit_dependency
from models import ROLE_ADMIN, ROLE_MAJOR_ADMIN
from utils.storage import ObjectStorage

logger = logging.getLogger(__name__)

api_rate_limit = rate_limit_dependency("api")
auth_rate_limit = rate_limit_dependency("auth")
cron_rate_limit = rate_limit_dependency("cron", exempt_internal=False)


def get_current_user(request: Request) -> Principal:
    """
    Internal (system) requests act as major_admin; everyone else needs a bearer JWT.
    """
    if is_internal_request(request):
        return SYSTEM_PRINCIPAL
    token = bearer_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization token missing.")
    return decode_access_token(token)


def require_roles(*roles: str) -> Callable[..., Principal]:
    def dependency(user: Principal = Depends(get_current_user)) -> Principal:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this endpoint",
            )
        return user

    return dependency


get_admin_user = require_roles(ROLE_ADMIN, ROLE_MAJOR_ADMIN)
get_major_admin_user = require_roles(ROLE_MAJOR_ADMIN)


def require_internal_request(request: Request) -> Principal:
    if not is_internal_request(request):
        logger.warning(f"Rejected non-internal call to {request.url.path}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Internal endpoint")
    return SYSTEM_PRINCIPAL


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_warmer(request: Request) -> CacheWarmer:
    return request.app.state.warmer


def get_activity_tracker(request: Request) -> ActivityTracker:
    return request.app.state.activity_tracker


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage
