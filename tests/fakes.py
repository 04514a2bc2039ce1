"""In-memory stand-ins for the object store and failing cache stores."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.cache import CacheStore
from utils.storage import ObjectNotFound, ObjectStorage, ObjectStorageError, StoredObject, parse_document_json


class InMemoryObjectStorage(ObjectStorage):
    def __init__(self):
        super().__init__("test-bucket", region="us-west-2", client=object())
        self.objects: Dict[str, bytes] = {}
        self.metadata: Dict[str, Dict[str, str]] = {}
        self.fail_with: Optional[Exception] = None
        self.calls: List[str] = []

    def _check(self, op: str):
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    def put_document(self, key: str, document: Any, metadata: Optional[Dict[str, str]] = None):
        self.objects[key] = json.dumps(document).encode("utf-8")
        self.metadata[key] = dict(metadata or {})

    def put_raw(self, key: str, data: bytes, metadata: Optional[Dict[str, str]] = None):
        self.objects[key] = data
        self.metadata[key] = dict(metadata or {})

    def document(self, key: str) -> Any:
        return parse_document_json(self.objects[key].decode("utf-8"))

    async def list_objects(self, prefix: str) -> List[StoredObject]:
        self._check("list_objects")
        return [
            StoredObject(key=key, size=len(data), last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc))
            for key, data in sorted(self.objects.items())
            if key.startswith(prefix)
        ]

    async def list_prefixes(self, prefix: str) -> List[str]:
        self._check("list_prefixes")
        found = set()
        for key in self.objects:
            if key.startswith(prefix):
                rest = key[len(prefix):]
                if "/" in rest:
                    found.add(prefix + rest.split("/", 1)[0] + "/")
        return sorted(found)

    async def get_bytes(self, key: str) -> bytes:
        self._check("get_bytes")
        if key not in self.objects:
            raise ObjectNotFound(key)
        return self.objects[key]

    async def put_bytes(self, key, data, *, content_type="application/octet-stream", metadata=None):
        self._check("put_bytes")
        self.objects[key] = data
        self.metadata[key] = dict(metadata or {})

    async def head_metadata(self, key: str) -> Dict[str, str]:
        self._check("head_metadata")
        if key not in self.objects:
            raise ObjectNotFound(key)
        return dict(self.metadata.get(key, {}))

    async def delete(self, key: str) -> None:
        self._check("delete")
        self.objects.pop(key, None)
        self.metadata.pop(key, None)

    async def copy(self, source_key, dest_key, *, metadata=None):
        self._check("copy")
        if source_key not in self.objects:
            raise ObjectNotFound(source_key)
        self.objects[dest_key] = self.objects[source_key]
        self.metadata[dest_key] = dict(metadata if metadata is not None else self.metadata.get(source_key, {}))

    async def presign_get(self, key: str, *, expires: int = 900) -> str:
        self._check("presign_get")
        return f"https://test-bucket.s3.amazonaws.com/{key}?X-Amz-Expires={expires}"


class BrokenCacheStore(CacheStore):
    """Every operation fails, like an unreachable Redis."""

    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc or ConnectionError("cache store unreachable")

    async def get(self, key):
        raise self.exc

    async def set(self, key, value, *, ttl_seconds):
        raise self.exc

    async def delete_pattern(self, pattern):
        raise self.exc

    async def keys(self, pattern):
        raise self.exc

    async def ttl(self, key):
        raise self.exc


def storage_error(message: str = "S3 unavailable") -> ObjectStorageError:
    return ObjectStorageError(message)
