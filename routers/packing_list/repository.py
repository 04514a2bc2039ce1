"""Packing list repository layer (object storage)."""

import asyncio
from datetime import datetime
from typing import Any, List, Tuple

from utils.dates import month_name
from utils.storage import ObjectStorage, StoredObject

ROLLS_ROOT = "Inventario/Catalogo_Rollos/"
BACKUP_ROOT = f"{ROLLS_ROOT}backups/"
PACKING_LIST_MARKER = "packing_lists_con_unidades"
DETAIL_MARKER = "detalle_"


def is_working_file(key: str) -> bool:
    # Backups and per-row exports live beside the working files
    return key.endswith(".json") and "backup" not in key and "_row" not in key


def backup_key(key: str, when: datetime) -> str:
    name = key.rsplit("/", 1)[-1][: -len(".json")]
    return f"{BACKUP_ROOT}{name}_backup_edit_{int(when.timestamp() * 1000)}.json"


def inventory_month_prefix(year: int, month: int) -> str:
    return f"Inventario/{year}/{month_name(month)}/"


async def list_roll_files(storage: ObjectStorage, marker: str) -> List[StoredObject]:
    return [
        obj
        for obj in await storage.list_objects(ROLLS_ROOT)
        if is_working_file(obj.key) and marker in obj.key
    ]


async def load_roll_files(storage: ObjectStorage, files: List[StoredObject]) -> List[Tuple[StoredObject, List[dict]]]:
    documents = await asyncio.gather(*(storage.get_json(obj.key) for obj in files))
    return [
        (obj, [row for row in document if isinstance(row, dict)] if isinstance(document, list) else [])
        for obj, document in zip(files, documents)
    ]


async def list_json(storage: ObjectStorage, prefix: str) -> List[str]:
    return [obj.key for obj in await storage.list_objects(prefix) if obj.key.endswith(".json")]


async def read(storage: ObjectStorage, key: str) -> Any:
    return await storage.get_json(key)


async def write(storage: ObjectStorage, key: str, document: Any, **metadata: str) -> None:
    await storage.put_json(key, document, metadata=metadata or None)


async def delete(storage: ObjectStorage, key: str) -> None:
    await storage.delete(key)
