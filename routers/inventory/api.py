from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import Principal
from core.cache import with_cache
from core.cache_keys import INVENTORY
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_current_user, get_storage, get_warmer
from utils.storage import ObjectStorage

from . import service
from .schemas import InventoryRowCreate, InventoryRowUpdate

router = APIRouter(prefix="/api/s3/inventario", tags=["Inventory"], dependencies=[Depends(api_rate_limit)])


async def _inventory_producer(request: Request) -> JSONResponse:
    body = await service.inventory_listing(
        request.app.state.storage,
        year=request.query_params.get("year"),
        month=request.query_params.get("month"),
    )
    return JSONResponse(body)


cached_inventory = with_cache(
    _inventory_producer,
    resource=INVENTORY,
    skip_cache=lambda request: request.query_params.get("refresh") == "true",
)


@router.get("")
async def get_inventory(
    request: Request,
    year: Optional[str] = None,
    month: Optional[str] = None,
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
):
    return await cached_inventory(request)


@router.post("/create-row")
async def create_inventory_row(
    payload: InventoryRowCreate,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.create_row(storage, warmer, user, payload)


@router.put("/update")
async def update_inventory_row(
    payload: InventoryRowUpdate,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.update_row(
        storage,
        warmer,
        user,
        file_key=payload.file_key,
        row_index=payload.row_index,
        changes=payload.changes,
    )
