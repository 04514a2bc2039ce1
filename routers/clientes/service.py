"""Client directory service layer."""

import logging

from fastapi import HTTPException

from utils.logging_helpers import log_error
from utils.storage import ObjectStorage, ObjectStorageError

from . import repository

logger = logging.getLogger(__name__)

CLIENTE_FIELDS = ("empresa", "contacto", "direccion", "telefono", "email", "vendedor", "ubicacion", "comentarios")


def normalize_cliente(item: dict, file_key: str) -> dict:
    normalized = {field: str(item.get(field) or "") for field in CLIENTE_FIELDS}
    normalized["fileKey"] = file_key
    return normalized


async def clientes_listing(storage: ObjectStorage) -> dict:
    try:
        rows = await repository.load_clientes(storage)
    except ObjectStorageError as exc:
        log_error(logger, "Clientes listing failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener los clientes")
    clientes = [normalize_cliente(item, key) for item, key in rows]
    clientes.sort(key=lambda c: c["empresa"].lower())
    return {"data": clientes, "total": len(clientes), "searchedIn": repository.CLIENTES_PREFIX}
