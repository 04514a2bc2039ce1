"""Supplier directory service layer."""

import logging
import re
from datetime import datetime, timezone

from fastapi import HTTPException

from auth import Principal
from core.cache_warming import CacheWarmer
from utils.logging_helpers import log_error, log_info
from utils.storage import ObjectStorage, ObjectStorageError

from . import repository
from .schemas import ProveedorRequest

logger = logging.getLogger(__name__)

CONTACT_FIELD = "Nombre de contacto"
PHONE_FIELD = "Teléfono"


def normalize_proveedor(item: dict, file_key: str) -> dict:
    return {
        "Empresa": str(item.get("Empresa") or ""),
        CONTACT_FIELD: str(item.get(CONTACT_FIELD) or ""),
        PHONE_FIELD: str(item.get(PHONE_FIELD) or ""),
        "Correo": str(item.get("Correo") or ""),
        "Producto": str(item.get("Producto") or ""),
        "fileKey": file_key,
    }


async def proveedores_listing(storage: ObjectStorage) -> dict:
    try:
        keys = await repository.list_keys(storage)
        if not keys:
            raise HTTPException(
                status_code=404,
                detail=f"No se encontraron archivos de proveedores JSON en la carpeta {repository.PROVEEDORES_PREFIX}",
            )
        rows, failed = await repository.load_proveedores(storage, keys)
    except ObjectStorageError as exc:
        log_error(logger, "Proveedores listing failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener los proveedores")

    proveedores = [normalize_proveedor(item, key) for item, key in rows]
    # Rows without a company, contact or email are spreadsheet filler
    proveedores = [p for p in proveedores if p["Empresa"] or p[CONTACT_FIELD] or p["Correo"]]
    if not proveedores and failed:
        log_error(logger, "No proveedores file could be read", failed=len(failed))
        raise HTTPException(status_code=500, detail="No se pudo procesar ningún archivo correctamente")
    proveedores.sort(key=lambda p: p["Empresa"].lower())
    return {
        "data": proveedores,
        "total": len(proveedores),
        "failedFiles": failed,
        "searchedIn": repository.PROVEEDORES_PREFIX,
    }


def _new_key(empresa: str, now: datetime) -> str:
    slug = re.sub(r"[^a-z0-9_]", "", re.sub(r"\s+", "_", empresa).lower())
    stamp = re.sub(r"[:.]", "-", now.isoformat())
    return f"{repository.PROVEEDORES_PREFIX}proveedor_{slug}_{stamp}.json"


def _document(payload: ProveedorRequest) -> dict:
    return {
        "Empresa": payload.Empresa,
        CONTACT_FIELD: (payload.nombre_contacto or "").strip(),
        PHONE_FIELD: (payload.telefono or "").strip(),
        "Correo": payload.Correo,
        "Producto": (payload.Producto or "").strip(),
    }


def _check_key(file_key: str) -> None:
    if not file_key.startswith(repository.PROVEEDORES_PREFIX) or ".." in file_key:
        raise HTTPException(status_code=400, detail="fileKey inválido")


async def create_proveedor(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: ProveedorRequest) -> dict:
    now = datetime.now(timezone.utc)
    proveedor = _document(payload)
    key = _new_key(payload.Empresa, now)
    try:
        await repository.save_proveedor(
            storage, key, proveedor, created_by=user.email or "unknown", created_at=now.isoformat()
        )
    except ObjectStorageError as exc:
        log_error(logger, "Proveedor create failed", user_id=user.user_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al crear proveedor en S3")

    report = await warmer.invalidate_and_warm_proveedores()
    log_info(logger, "Proveedor created", user_id=user.user_id, key=key)
    return {
        "message": "Proveedor creado exitosamente",
        "data": {"proveedor": proveedor, "fileKey": key, "fileName": key.rsplit("/", 1)[-1]},
        "cache": report.as_dict(),
    }


async def update_proveedor(
    storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: ProveedorRequest, file_key: str
) -> dict:
    _check_key(file_key)
    now = datetime.now(timezone.utc)
    proveedor = _document(payload)
    key = _new_key(payload.Empresa, now)
    try:
        # The file name carries the company, so an update is a rename
        await repository.save_proveedor(
            storage, key, proveedor, updated_by=user.email or "unknown", updated_at=now.isoformat()
        )
        if key != file_key:
            await repository.delete_proveedor(storage, file_key)
    except ObjectStorageError as exc:
        log_error(logger, "Proveedor update failed", user_id=user.user_id, key=file_key, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al actualizar proveedor en S3")

    report = await warmer.invalidate_and_warm_proveedores()
    log_info(logger, "Proveedor updated", user_id=user.user_id, key=key, previous=file_key)
    return {
        "message": "Proveedor actualizado exitosamente",
        "data": {
            "proveedor": proveedor,
            "fileKey": key,
            "fileName": key.rsplit("/", 1)[-1],
            "previousFileKey": file_key,
        },
        "cache": report.as_dict(),
    }


async def delete_proveedor(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, file_key: str) -> dict:
    _check_key(file_key)
    try:
        await repository.delete_proveedor(storage, file_key)
    except ObjectStorageError as exc:
        log_error(logger, "Proveedor delete failed", user_id=user.user_id, key=file_key, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al eliminar proveedor de S3")

    report = await warmer.invalidate_and_warm_proveedores()
    log_info(logger, "Proveedor deleted", user_id=user.user_id, key=file_key)
    return {
        "message": "Proveedor eliminado exitosamente",
        "data": {
            "fileKey": file_key,
            "deletedBy": user.email or "unknown",
            "deletedAt": datetime.now(timezone.utc).isoformat(),
        },
        "cache": report.as_dict(),
    }
