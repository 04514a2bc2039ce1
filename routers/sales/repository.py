"""Sales history repository layer (object storage)."""

import asyncio
from datetime import datetime
from typing import Any, List

from utils.dates import month_name
from utils.storage import ObjectStorage

SALES_ROOT = "Inventario/Historial Venta/"


def month_prefix(year: int, month: int) -> str:
    return f"{SALES_ROOT}{year}/{month:02d}/"


def sale_key(when: datetime, sale_id: str) -> str:
    return f"{month_prefix(when.year, when.month)}{when.strftime('%Y-%m-%d_%H-%M-%S')}_{sale_id[-6:]}.json"


def recent_month_prefixes(now: datetime, months: int) -> List[str]:
    prefixes = []
    year, month = now.year, now.month
    for _ in range(months):
        prefixes.append(month_prefix(year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return prefixes


async def load_sales(storage: ObjectStorage, prefixes: List[str]) -> List[dict]:
    keys = []
    for prefix in prefixes:
        keys.extend(obj.key for obj in await storage.list_objects(prefix) if obj.key.endswith(".json"))
    documents = await asyncio.gather(*(storage.get_json(key) for key in keys))
    return [{**doc, "fileKey": key} for key, doc in zip(keys, documents) if isinstance(doc, dict)]


async def save_sale(storage: ObjectStorage, key: str, record: dict, sold_by: str) -> None:
    await storage.put_json(
        key,
        record,
        metadata={"sale-count": "1", "last-updated": record["timestamp"], "sold-by": sold_by},
    )


RETURNS_ROOT = "Inventario/Devoluciones/"
ROLLS_ROOT = "Inventario/Catalogo_Rollos/"
PACKING_LIST_MARKER = "packing_lists_con_unidades"


def inventory_month_prefix(when: datetime) -> str:
    return f"Inventario/{when.year}/{month_name(when.month)}/"


def return_key(when: datetime, return_id: str) -> str:
    return f"{RETURNS_ROOT}{when.year}/{when.month:02d}/{return_id}.json"


async def list_json(storage: ObjectStorage, prefix: str) -> List[str]:
    return [obj.key for obj in await storage.list_objects(prefix) if obj.key.endswith(".json")]


async def packing_list_keys(storage: ObjectStorage) -> List[str]:
    return [
        key
        for key in await list_json(storage, ROLLS_ROOT)
        if PACKING_LIST_MARKER in key and "backup" not in key and "_row" not in key
    ]


async def read(storage: ObjectStorage, key: str) -> Any:
    return await storage.get_json(key)


async def write(storage: ObjectStorage, key: str, document: Any, **metadata: str) -> None:
    await storage.put_json(key, document, metadata=metadata or None)
