"""Supplier directory repository layer (object storage)."""

import asyncio
from typing import List, Tuple

from utils.storage import ObjectStorage, ObjectStorageError

PROVEEDORES_PREFIX = "Provedores/json/"


async def list_keys(storage: ObjectStorage) -> List[str]:
    return [obj.key for obj in await storage.list_objects(PROVEEDORES_PREFIX) if obj.key.endswith(".json")]


async def load_proveedores(storage: ObjectStorage, keys: List[str]) -> Tuple[List[Tuple[dict, str]], List[str]]:
    """Rows with their file key, plus the keys that could not be read."""
    documents = await asyncio.gather(*(storage.get_json(key) for key in keys), return_exceptions=True)
    rows, failed = [], []
    for key, document in zip(keys, documents):
        if isinstance(document, ObjectStorageError):
            failed.append(key)
            continue
        if isinstance(document, BaseException):
            raise document
        items = document if isinstance(document, list) else [document]
        rows.extend((item, key) for item in items if isinstance(item, dict))
    return rows, failed


async def save_proveedor(storage: ObjectStorage, key: str, proveedor: dict, **metadata: str) -> None:
    await storage.put_json(key, proveedor, metadata=metadata)


async def delete_proveedor(storage: ObjectStorage, key: str) -> None:
    await storage.delete(key)
