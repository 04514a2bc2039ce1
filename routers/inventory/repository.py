"""Inventory repository layer (object storage)."""

import asyncio
import re
from typing import Any, List, Optional

from utils.dates import month_name
from utils.storage import ObjectStorage

INVENTORY_ROOT = "Inventario/"
ROW_FILE_PATTERN = re.compile(r"inventario-row(\d+)\.json$")
_YEAR_SEGMENT = re.compile(r"^\d{4}$")


def folder_prefix(year: Optional[int] = None, month: Optional[int] = None) -> str:
    if year is None:
        return INVENTORY_ROOT
    if month is None:
        return f"{INVENTORY_ROOT}{year}/"
    return f"{INVENTORY_ROOT}{year}/{month_name(month)}/"


def is_inventory_document(key: str) -> bool:
    # Inventario/ also holds fichas técnicas and sales history
    parts = key.split("/")
    return len(parts) >= 4 and bool(_YEAR_SEGMENT.match(parts[1])) and key.lower().endswith(".json")


def _rows_of(document: Any) -> List[dict]:
    if isinstance(document, list):
        return [row for row in document if isinstance(row, dict)]
    if isinstance(document, dict):
        for field in ("data", "items"):
            if isinstance(document.get(field), list):
                return [row for row in document[field] if isinstance(row, dict)]
        return [document]
    return []


async def load_rows(storage: ObjectStorage, prefix: str) -> List[dict]:
    keys = [obj.key for obj in await storage.list_objects(prefix) if is_inventory_document(obj.key)]
    documents = await asyncio.gather(*(storage.get_json(key) for key in keys))
    rows = []
    for key, document in zip(keys, documents):
        for index, row in enumerate(_rows_of(document)):
            rows.append({**row, "fileKey": key, "rowIndex": index})
    return rows


async def next_row_key(storage: ObjectStorage, prefix: str) -> str:
    numbers = [0]
    for obj in await storage.list_objects(prefix):
        match = ROW_FILE_PATTERN.search(obj.key)
        if match:
            numbers.append(int(match.group(1)))
    return f"{prefix}inventario-row{max(numbers) + 1:03d}.json"


async def read_document(storage: ObjectStorage, key: str) -> List[dict]:
    return _rows_of(await storage.get_json(key))


async def write_document(storage: ObjectStorage, key: str, rows: List[dict]) -> None:
    await storage.put_json(key, rows)
