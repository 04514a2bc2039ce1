from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import Principal
from core.cache import with_cache
from core.cache_keys import ORDERS, PENDING_ORDERS
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_current_user, get_storage, get_warmer
from utils.storage import ObjectStorage

from . import service
from .schemas import OrderCreateRequest, PendingOrderSave

router = APIRouter(tags=["Orders"], dependencies=[Depends(api_rate_limit)])


async def _orders_producer(request: Request) -> JSONResponse:
    body = await service.orders_listing(
        request.app.state.storage,
        year=request.query_params.get("year"),
        client=request.query_params.get("client"),
    )
    return JSONResponse(body)


cached_orders = with_cache(
    _orders_producer,
    resource=ORDERS,
    ttl=lambda request: service.listing_ttl(request.query_params.get("year")),
    skip_cache=lambda request: request.query_params.get("refresh") == "true",
)


@router.get("/api/s3/pedidos")
async def get_orders(
    request: Request,
    year: Optional[str] = None,
    client: Optional[str] = None,
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
):
    return await cached_orders(request)


@router.post("/api/orders/create-manual")
async def create_manual_order(
    payload: OrderCreateRequest,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.create_manual_order(storage, warmer, user, payload)


async def _pending_producer(request: Request) -> JSONResponse:
    return JSONResponse(await service.pending_orders(request.app.state.storage))


cached_pending = with_cache(
    _pending_producer,
    resource=PENDING_ORDERS,
    skip_cache=lambda request: request.query_params.get("refresh") == "true",
)


@router.get("/api/orders/check-pending")
async def check_pending_orders(request: Request, refresh: bool = False, user: Principal = Depends(get_admin_user)):
    return await cached_pending(request)


@router.post("/api/orders/save-pending")
async def save_pending_order(
    payload: PendingOrderSave,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.save_pending_order(storage, warmer, user, payload, complete=True)


@router.post("/api/orders/save-pending-data")
async def save_pending_order_data(
    payload: PendingOrderSave,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.save_pending_order(storage, warmer, user, payload, complete=False)
