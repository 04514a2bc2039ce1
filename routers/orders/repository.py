"""Orders repository layer (object storage)."""

import asyncio
import re
from typing import Any, List, Optional, Tuple

from utils.storage import ObjectNotFound, ObjectStorage

ORDERS_ROOT = "Pedidos/json/"
_YEAR_FOLDER = re.compile(r"^\d{4}$")


def order_key(year: int, orden_de_compra: str) -> str:
    return f"{ORDERS_ROOT}{year}/{orden_de_compra}.json"


async def year_folders(storage: ObjectStorage) -> List[str]:
    years = [p[len(ORDERS_ROOT):].strip("/") for p in await storage.list_prefixes(ORDERS_ROOT)]
    return sorted((y for y in years if _YEAR_FOLDER.match(y)), reverse=True)


async def load_orders(storage: ObjectStorage, year: Optional[int] = None) -> List[dict]:
    years = [str(year)] if year is not None else await year_folders(storage)
    keys = []
    for folder in years:
        keys.extend(
            obj.key
            for obj in await storage.list_objects(f"{ORDERS_ROOT}{folder}/")
            if obj.key.lower().endswith(".json")
        )
    documents = await asyncio.gather(*(storage.get_json(key) for key in keys))
    orders = []
    for key, document in zip(keys, documents):
        if isinstance(document, dict):
            orders.append({**document, "fileKey": key, "year": int(key.split("/")[2])})
    return orders


async def save_order(storage: ObjectStorage, key: str, order: dict) -> None:
    await storage.put_json(key, order)


def name_variants(orden_de_compra: str) -> List[str]:
    # Files were uploaded by hand; spaces, underscores and dashes are used interchangeably
    return list(
        dict.fromkeys(
            [
                orden_de_compra,
                orden_de_compra.replace(" ", "_"),
                orden_de_compra.replace("_", " "),
                orden_de_compra.replace("-", " "),
            ]
        )
    )


def _compact(value: str) -> str:
    return re.sub(r"[_\s-]", "", value).lower()


async def find_order(storage: ObjectStorage, orden_de_compra: str, years: List[int]) -> Optional[Tuple[str, Any]]:
    """Locate an order file by name first, then by a normalized scan of each year."""
    for year in years:
        for name in name_variants(orden_de_compra):
            key = order_key(year, name)
            try:
                return key, await storage.get_json(key)
            except ObjectNotFound:
                continue
    wanted = _compact(orden_de_compra)
    for year in years:
        for obj in await storage.list_objects(f"{ORDERS_ROOT}{year}/"):
            stem = obj.key.rsplit("/", 1)[-1]
            if stem.lower().endswith(".json") and _compact(stem[:-5]) == wanted:
                return obj.key, await storage.get_json(obj.key)
    return None
