"""Fichas técnicas service layer."""

import logging
from typing import List, Optional

from fastapi import HTTPException

from auth import Principal
from config import S3_PRESIGN_EXPIRES_SECONDS
from core.cache import CacheService
from core.cache_keys import FICHAS_TECNICAS
from core.cache_warming import CacheWarmer
from models import ROLE_ADMIN, ROLE_MAJOR_ADMIN, ROLE_SELLER
from utils.logging_helpers import log_error, log_info
from utils.storage import ObjectNotFound, ObjectStorage, ObjectStorageError

from . import repository

logger = logging.getLogger(__name__)


def can_view(role: str, allowed_roles: List[str]) -> bool:
    if role == ROLE_MAJOR_ADMIN:
        return True
    if role == ROLE_ADMIN:
        return ROLE_ADMIN in allowed_roles or ROLE_MAJOR_ADMIN in allowed_roles
    if role == ROLE_SELLER:
        return ROLE_SELLER in allowed_roles
    return False


def _validated_roles(roles: Optional[List[str]]) -> List[str]:
    parsed = repository.parse_roles(",".join(roles or []), separator=",")
    if roles and len(parsed) != len(set(roles)):
        raise HTTPException(status_code=400, detail="Unknown role in allowed_roles")
    return parsed or list(repository.DEFAULT_ALLOWED_ROLES)


def _checked_key(key: str) -> str:
    if not key or not key.startswith(repository.FICHAS_PREFIX) or ".." in key:
        raise HTTPException(status_code=400, detail="Invalid ficha key")
    return key


def _storage_failure(action: str, exc: ObjectStorageError, user: Principal) -> HTTPException:
    log_error(logger, f"Fichas técnicas {action} failed", user_id=user.user_id, error=str(exc))
    return HTTPException(status_code=500, detail=f"Error al {action} la ficha técnica")


async def list_fichas(cache: CacheService, storage: ObjectStorage, user: Principal, *, refresh: bool = False) -> dict:
    # The unfiltered listing is shared by every role; filtering happens per caller.
    async def producer():
        return await repository.list_fichas(storage)

    try:
        result = await cache.get_or_set(FICHAS_TECNICAS, {}, producer, skip_cache=refresh)
    except ObjectStorageError as exc:
        raise _storage_failure("listar", exc, user)

    visible = [ficha for ficha in result.value if can_view(user.role, ficha["allowed_roles"])]
    return {"fichas": visible, "total": len(visible), "cached": result.hit}


async def upload_ficha(
    storage: ObjectStorage,
    warmer: CacheWarmer,
    user: Principal,
    *,
    filename: str,
    content: bytes,
    allowed_roles: Optional[List[str]],
) -> dict:
    if not filename or not filename.lower().endswith(repository.PDF_SUFFIX):
        raise HTTPException(status_code=400, detail="Solo se permiten archivos PDF")
    if not content:
        raise HTTPException(status_code=400, detail="El archivo está vacío")

    roles = _validated_roles(allowed_roles)
    key = repository.build_key(repository.display_name(filename))
    try:
        await repository.save_ficha(storage, key, content, roles, user.email)
    except ObjectStorageError as exc:
        raise _storage_failure("subir", exc, user)

    report = await warmer.invalidate_and_warm_fichas_tecnicas()
    log_info(logger, "Ficha técnica uploaded", user_id=user.user_id, key=key)
    return {"success": True, "key": key, "allowed_roles": roles, "cache": report.as_dict()}


async def edit_ficha(
    storage: ObjectStorage,
    warmer: CacheWarmer,
    user: Principal,
    *,
    key: str,
    new_name: Optional[str],
    allowed_roles: Optional[List[str]],
) -> dict:
    key = _checked_key(key)
    if new_name is None and allowed_roles is None:
        raise HTTPException(status_code=400, detail="Nothing to update")

    try:
        roles = (
            _validated_roles(allowed_roles)
            if allowed_roles is not None
            else await repository.allowed_roles(storage, key)
        )
        # Roles live in metadata from here on, so the key never keeps a _roles_ segment.
        dest_key = repository.build_key(new_name or repository.display_name(key))
        if dest_key != key and await storage.exists(dest_key):
            raise HTTPException(status_code=409, detail="Ya existe una ficha con ese nombre")
        await repository.move_ficha(storage, key, dest_key, roles)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="Ficha técnica no encontrada")
    except ObjectStorageError as exc:
        raise _storage_failure("editar", exc, user)

    report = await warmer.invalidate_and_warm_fichas_tecnicas()
    log_info(logger, "Ficha técnica edited", user_id=user.user_id, key=key, new_key=dest_key)
    return {"success": True, "key": dest_key, "allowed_roles": roles, "cache": report.as_dict()}


async def delete_ficha(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, *, key: str) -> dict:
    key = _checked_key(key)
    try:
        if not await storage.exists(key):
            raise HTTPException(status_code=404, detail="Ficha técnica no encontrada")
        await storage.delete(key)
    except ObjectStorageError as exc:
        raise _storage_failure("eliminar", exc, user)

    report = await warmer.invalidate_and_warm_fichas_tecnicas()
    log_info(logger, "Ficha técnica deleted", user_id=user.user_id, key=key)
    return {"success": True, "message": "Ficha técnica eliminada", "key": key, "cache": report.as_dict()}


async def download_url(storage: ObjectStorage, user: Principal, *, key: str) -> dict:
    key = _checked_key(key)
    try:
        roles = await repository.allowed_roles(storage, key)
        if not can_view(user.role, roles):
            raise HTTPException(status_code=403, detail="No tienes acceso a esta ficha técnica")
        url = await storage.presign_get(key, expires=S3_PRESIGN_EXPIRES_SECONDS)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="Ficha técnica no encontrada")
    except ObjectStorageError as exc:
        raise _storage_failure("descargar", exc, user)
    return {"url": url, "expires_in": S3_PRESIGN_EXPIRES_SECONDS}
