from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import Principal
from core.cache import with_cache
from core.cache_keys import AVAILABLE_ORDERS, ORDER_ROLLS, PACKING_LIST_ROLLS
from core.cache_warming import CacheWarmer
from routers.dependencies import (
    api_rate_limit,
    auth_rate_limit,
    get_admin_user,
    get_current_user,
    get_storage,
    get_warmer,
)
from utils.storage import ObjectStorage

from . import service
from .schemas import DeletePendingRequest, EditRollsRequest

# Edits are throttled with the stricter auth class
router = APIRouter(prefix="/api/packing-list", tags=["Packing List"])


def _refresh(request: Request) -> bool:
    return request.query_params.get("refresh") == "true"


async def _rolls_producer(request: Request) -> JSONResponse:
    body = await service.rolls_for_fabric(
        request.app.state.storage,
        tela=request.query_params.get("tela"),
        color=request.query_params.get("color"),
    )
    return JSONResponse(body)


async def _available_orders_producer(request: Request) -> JSONResponse:
    return JSONResponse(await service.available_orders(request.app.state.storage))


async def _order_rolls_producer(request: Request) -> JSONResponse:
    body = await service.order_rolls(request.app.state.storage, oc=request.query_params.get("oc"))
    return JSONResponse(body)


cached_rolls = with_cache(_rolls_producer, resource=PACKING_LIST_ROLLS, skip_cache=_refresh)
cached_available_orders = with_cache(_available_orders_producer, resource=AVAILABLE_ORDERS, skip_cache=_refresh)
cached_order_rolls = with_cache(_order_rolls_producer, resource=ORDER_ROLLS, skip_cache=_refresh)


@router.get("/get-rolls", dependencies=[Depends(api_rate_limit)])
async def get_rolls(
    request: Request,
    tela: Optional[str] = None,
    color: Optional[str] = None,
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
):
    return await cached_rolls(request)


@router.get("/get-available-orders", dependencies=[Depends(api_rate_limit)])
async def get_available_orders(request: Request, refresh: bool = False, user: Principal = Depends(get_admin_user)):
    return await cached_available_orders(request)


@router.post("/get-available-orders", dependencies=[Depends(api_rate_limit)])
async def refresh_available_orders(user: Principal = Depends(get_admin_user), warmer: CacheWarmer = Depends(get_warmer)):
    report = await warmer.invalidate_and_warm_packing_list()
    return {"success": True, "message": "Cache de órdenes disponibles invalidado", "cache": report.as_dict()}


@router.get("/get-order-rolls", dependencies=[Depends(api_rate_limit)])
async def get_order_rolls(
    request: Request,
    oc: Optional[str] = None,
    refresh: bool = False,
    user: Principal = Depends(get_admin_user),
):
    return await cached_order_rolls(request)


@router.put("/edit-rolls", dependencies=[Depends(auth_rate_limit)])
async def edit_rolls(
    payload: EditRollsRequest,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.edit_rolls(storage, warmer, user, payload)


@router.delete("/delete-pending", dependencies=[Depends(api_rate_limit)])
async def delete_pending(
    payload: DeletePendingRequest,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.delete_pending(storage, warmer, user, payload.oc)
