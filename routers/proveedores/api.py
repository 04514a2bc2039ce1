from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import Principal
from core.cache import with_cache
from core.cache_keys import PROVEEDORES
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_current_user, get_storage, get_warmer
from utils.storage import ObjectStorage

from . import service
from .schemas import ProveedorDelete, ProveedorRequest, ProveedorUpdate

router = APIRouter(prefix="/api/s3/proveedores", tags=["Proveedores"], dependencies=[Depends(api_rate_limit)])


async def _proveedores_producer(request: Request) -> JSONResponse:
    return JSONResponse(await service.proveedores_listing(request.app.state.storage))


cached_proveedores = with_cache(
    _proveedores_producer,
    resource=PROVEEDORES,
    skip_cache=lambda request: request.query_params.get("refresh") == "true",
)


@router.get("")
async def get_proveedores(request: Request, refresh: bool = False, user: Principal = Depends(get_current_user)):
    return await cached_proveedores(request)


@router.post("")
async def create_proveedor(
    payload: ProveedorRequest,
    user: Principal = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.create_proveedor(storage, warmer, user, payload)


@router.put("")
async def update_proveedor(
    payload: ProveedorUpdate,
    user: Principal = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.update_proveedor(storage, warmer, user, payload, payload.fileKey)


@router.delete("")
async def delete_proveedor(
    payload: ProveedorDelete,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.delete_proveedor(storage, warmer, user, payload.fileKey)
