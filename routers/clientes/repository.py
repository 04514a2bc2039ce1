"""Client directory repository layer (object storage)."""

import asyncio
from typing import List

from utils.storage import ObjectStorage

CLIENTES_PREFIX = "Directorio/Main/"


async def load_clientes(storage: ObjectStorage) -> List[dict]:
    keys = [obj.key for obj in await storage.list_objects(CLIENTES_PREFIX) if obj.key.endswith(".json")]
    documents = await asyncio.gather(*(storage.get_json(key) for key in keys))
    rows = []
    for key, document in zip(keys, documents):
        items = document if isinstance(document, list) else [document]
        rows.extend((item, key) for item in items if isinstance(item, dict))
    return rows
