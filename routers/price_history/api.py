from typing import Optional

from fastapi import APIRouter, Depends

from auth import Principal
from core.cache import CacheService
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_cache, get_current_user, get_storage, get_warmer
from utils.storage import ObjectStorage

from . import service
from .schemas import PriceEntryCreate

router = APIRouter(prefix="/api/s3/historial-precios", tags=["Price History"], dependencies=[Depends(api_rate_limit)])


@router.get("")
async def list_price_histories(
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    storage: ObjectStorage = Depends(get_storage),
):
    return await service.list_price_histories(cache, storage, refresh=refresh)


@router.post("/create")
async def add_price_entry(
    payload: PriceEntryCreate,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.add_price_entry(storage, warmer, user, payload)


@router.get("/{fabric_id}")
async def get_fabric_price_history(
    fabric_id: str,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    provider: Optional[str] = None,
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    storage: ObjectStorage = Depends(get_storage),
):
    return await service.fabric_price_history(
        cache,
        storage,
        fabric_id,
        date_from=date_from,
        date_to=date_to,
        provider=provider,
        refresh=refresh,
    )
