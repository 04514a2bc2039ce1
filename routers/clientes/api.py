from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import Principal
from core.cache import with_cache
from core.cache_keys import CLIENTES
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_current_user, get_warmer

from . import service

router = APIRouter(prefix="/api/s3/clientes", tags=["Clientes"], dependencies=[Depends(api_rate_limit)])


async def _clientes_producer(request: Request) -> JSONResponse:
    return JSONResponse(await service.clientes_listing(request.app.state.storage))


cached_clientes = with_cache(
    _clientes_producer,
    resource=CLIENTES,
    skip_cache=lambda request: request.query_params.get("refresh") == "true",
)


@router.get("")
async def get_clientes(request: Request, refresh: bool = False, user: Principal = Depends(get_current_user)):
    return await cached_clientes(request)


@router.post("/refresh")
async def refresh_clientes(user: Principal = Depends(get_admin_user), warmer: CacheWarmer = Depends(get_warmer)):
    report = await warmer.invalidate_and_warm_clientes()
    return {"success": True, "cache": report.as_dict()}
