from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import Principal
from core.cache import with_cache
from core.cache_keys import SOLD_ROLLS
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_current_user, get_storage, get_warmer
from utils.storage import ObjectStorage

from . import service
from .schemas import ReturnRequest, SaleRequest

router = APIRouter(tags=["Sales"], dependencies=[Depends(api_rate_limit)])


async def _sold_rolls_producer(request: Request) -> JSONResponse:
    body = await service.sold_rolls(request.app.state.storage, days_back=request.query_params.get("days_back"))
    return JSONResponse(body)


cached_sold_rolls = with_cache(
    _sold_rolls_producer,
    resource=SOLD_ROLLS,
    skip_cache=lambda request: request.query_params.get("refresh") == "true",
)


@router.post("/api/sales/save-sold-rolls")
async def save_sold_rolls(
    payload: SaleRequest,
    user: Principal = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.save_sold_rolls(storage, warmer, user, payload)


@router.get("/api/returns/get-sold-rolls")
async def get_sold_rolls(
    request: Request,
    days_back: Optional[str] = None,
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
):
    return await cached_sold_rolls(request)


@router.post("/api/returns/process-returns")
async def process_returns(
    payload: ReturnRequest,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.process_returns(storage, warmer, user, payload)
