from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from auth import Principal
from core.cache import CacheService
from core.cache_warming import CacheWarmer
from routers.dependencies import api_rate_limit, get_admin_user, get_cache, get_current_user, get_storage, get_warmer
from utils.storage import ObjectStorage

from . import service
from .schemas import FichaEditRequest

router = APIRouter(prefix="/api/s3/fichas-tecnicas", tags=["Fichas Tecnicas"], dependencies=[Depends(api_rate_limit)])


@router.get("")
async def list_fichas_tecnicas(
    refresh: bool = False,
    user: Principal = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    storage: ObjectStorage = Depends(get_storage),
):
    return await service.list_fichas(cache, storage, user, refresh=refresh)


@router.post("")
async def upload_ficha_tecnica(
    file: UploadFile = File(...),
    allowed_roles: Optional[List[str]] = Form(None),
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    content = await file.read()
    return await service.upload_ficha(
        storage,
        warmer,
        user,
        filename=file.filename or "",
        content=content,
        allowed_roles=allowed_roles,
    )


@router.patch("")
async def edit_ficha_tecnica(
    payload: FichaEditRequest,
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.edit_ficha(
        storage,
        warmer,
        user,
        key=payload.key,
        new_name=payload.new_name,
        allowed_roles=payload.allowed_roles,
    )


@router.delete("")
async def delete_ficha_tecnica(
    key: str = Query(...),
    user: Principal = Depends(get_admin_user),
    storage: ObjectStorage = Depends(get_storage),
    warmer: CacheWarmer = Depends(get_warmer),
):
    return await service.delete_ficha(storage, warmer, user, key=key)


@router.get("/download")
async def download_ficha_tecnica(
    key: str = Query(...),
    user: Principal = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage),
):
    return await service.download_url(storage, user, key=key)
