"""Price history repository layer (object storage)."""

import asyncio
from typing import List, Optional

from utils.storage import ObjectNotFound, ObjectStorage

PRICE_HISTORY_PREFIX = "historial de precios/"


def history_key(fabric_id: str) -> str:
    return f"{PRICE_HISTORY_PREFIX}{fabric_id}.json"


async def get_history(storage: ObjectStorage, fabric_id: str) -> Optional[dict]:
    try:
        document = await storage.get_json(history_key(fabric_id))
    except ObjectNotFound:
        return None
    return document if isinstance(document, dict) else None


async def list_histories(storage: ObjectStorage) -> List[dict]:
    keys = [obj.key for obj in await storage.list_objects(PRICE_HISTORY_PREFIX) if obj.key.endswith(".json")]
    documents = await asyncio.gather(*(storage.get_json(key) for key in keys))
    return [doc for doc in documents if isinstance(doc, dict)]


async def save_history(storage: ObjectStorage, fabric_id: str, document: dict) -> None:
    await storage.put_json(history_key(fabric_id), document)
