import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from auth import bearer_token, decode_access_token, is_internal_request
from config import (
    ACTIVITY_THROTTLE_WINDOW_SECONDS,
    ACTIVITY_TRACKER_MAX_USERS,
    APP_LOG_PATH,
    APP_NAME,
    APP_VERSION,
    AWS_ACCESS_KEY_ID,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    CACHE_MEMORY_MAX_KEYS,
    CACHE_REDIS_URL,
    CACHE_WARM_BASE_URL,
    CACHE_WARM_MAX_URLS,
    CACHE_WARM_TIMEOUT_SECONDS,
    ENVIRONMENT,
    LOG_LEVEL,
    RATE_LIMIT_REDIS_URL,
    RATE_LIMITS,
    REDIS_SOCKET_TIMEOUT_SECONDS,
    S3_BUCKET,
    TESTING,
)
from core.activity import ActivityTracker
from core.cache import CacheService, CacheStore, build_cache_store
from core.cache_warming import CacheWarmer
from core.logging import configure_logging, request_id_var
from core.rate_limit import RateLimiter, RateLimitExceeded
from utils.storage import ObjectStorage

log_level = configure_logging(environment=ENVIRONMENT, log_level=LOG_LEVEL, log_path=APP_LOG_PATH)
logger = logging.getLogger(__name__)

_DEFAULT = object()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Short ID for readability
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)
        request.state.request_id = request_id

        start_time = time.time()
        user_id = _log_user_id(request)

        query_str = f"?{request.url.query}" if request.query_params else ""
        logger.info(
            f"REQUEST | id={request_id} | method={request.method} | path={request.url.path}{query_str} | "
            f"user_id={user_id or 'anonymous'} | ip={request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"ERROR | id={request_id} | method={request.method} | path={request.url.path} | "
                f"error={type(e).__name__}: {str(e)} | time={process_time:.3f}s | user_id={user_id or 'anonymous'}",
                exc_info=True,
            )
            raise

        process_time = time.time() - start_time
        logger.info(
            f"RESPONSE | id={request_id} | method={request.method} | path={request.url.path} | "
            f"status={response.status_code} | time={process_time:.3f}s | user_id={user_id or 'anonymous'}"
        )
        response.headers["X-Request-ID"] = request_id
        return response


def _log_user_id(request: Request) -> Optional[str]:
    if is_internal_request(request):
        return "system"
    token = bearer_token(request)
    if not token:
        return None
    try:
        return decode_access_token(token).user_id[:8]
    except HTTPException:
        return "invalid-token"


def _in_process_client_factory(app: FastAPI):
    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://internal",
            timeout=CACHE_WARM_TIMEOUT_SECONDS,
        )

    return factory


def _remote_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=CACHE_WARM_BASE_URL, timeout=CACHE_WARM_TIMEOUT_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{APP_NAME} started successfully")
    if ENVIRONMENT == "development" and not TESTING:
        from scheduler import start_scheduler

        start_scheduler(app)
        logger.info("Local scheduler started")
    else:
        logger.info("Scheduler not started - using external cron for scheduling")

    yield

    from scheduler import stop_scheduler

    stop_scheduler()
    await app.state.warmer.drain(timeout=CACHE_WARM_TIMEOUT_SECONDS)
    await app.state.cache.store.close()
    await app.state.rate_limiter.close()
    logger.info(f"{APP_NAME} stopped")


def create_app(
    *,
    cache_store: Optional[CacheStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    storage: Optional[ObjectStorage] = None,
    activity_tracker: Optional[ActivityTracker] = None,
    warm_client_factory=_DEFAULT,
) -> FastAPI:
    """Composition root. Collaborators can be injected; defaults come from config."""
    app = FastAPI(
        title=APP_NAME,
        description="Inventory, orders and documents API for Telas Luciana",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    cache = CacheService(
        cache_store
        or build_cache_store(
            CACHE_REDIS_URL,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            max_keys=CACHE_MEMORY_MAX_KEYS,
        )
    )
    storage = storage or ObjectStorage(
        S3_BUCKET,
        region=AWS_REGION,
        access_key_id=AWS_ACCESS_KEY_ID,
        secret_access_key=AWS_SECRET_ACCESS_KEY,
    )
    if warm_client_factory is _DEFAULT:
        warm_client_factory = _remote_client_factory if CACHE_WARM_BASE_URL else _in_process_client_factory(app)

    app.state.cache = cache
    app.state.storage = storage
    app.state.rate_limiter = rate_limiter or RateLimiter(
        RATE_LIMITS,
        redis_url=RATE_LIMIT_REDIS_URL,
        socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
    )
    app.state.activity_tracker = activity_tracker or ActivityTracker(
        window_seconds=ACTIVITY_THROTTLE_WINDOW_SECONDS,
        max_users=ACTIVITY_TRACKER_MAX_USERS,
    )
    app.state.warmer = CacheWarmer(
        cache,
        storage,
        client_factory=warm_client_factory,
        max_urls=CACHE_WARM_MAX_URLS,
    )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
        return exc.response

    # Request logging runs before CORS so it logs all requests
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*", "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
    )

    from routers.cache_admin import api as cache_admin_api
    from routers.clientes import api as clientes_api
    from routers.cron import api as cron_api
    from routers.fichas_tecnicas import api as fichas_api
    from routers.inventory import api as inventory_api
    from routers.orders import api as orders_api
    from routers.packing_list import api as packing_list_api
    from routers.price_history import api as price_history_api
    from routers.proveedores import api as proveedores_api
    from routers.sales import api as sales_api
    from routers.session import api as session_api
    from routers.users import api as users_api

    app.include_router(session_api.router)
    app.include_router(fichas_api.router)
    app.include_router(inventory_api.router)
    app.include_router(orders_api.router)
    app.include_router(packing_list_api.router)
    app.include_router(price_history_api.router)
    app.include_router(sales_api.router)
    app.include_router(clientes_api.router)
    app.include_router(proveedores_api.router)
    app.include_router(users_api.router)
    app.include_router(cron_api.router)
    app.include_router(cache_admin_api.router)

    @app.get("/")
    async def read_root():
        """Root endpoint to check if the server is running."""
        return {"status": "online", "message": f"Welcome to {APP_NAME}", "version": APP_VERSION, "environment": ENVIRONMENT}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
