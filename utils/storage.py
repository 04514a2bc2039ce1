"""S3 document store.

The bucket is used as a semi-structured document store: JSON documents and PDFs
under structured key prefixes. boto3 is blocking, so every call runs in a
worker thread.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_NAN_PATTERN = re.compile(r"(?<=[:\[,])(\s*)NaN\b")


class ObjectStorageError(Exception):
    pass


class ObjectNotFound(ObjectStorageError):
    pass


@dataclass
class StoredObject:
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None


def parse_document_json(text: str) -> Any:
    """Parse a stored JSON document. Spreadsheet exports write bare ``NaN``."""
    return json.loads(_NAN_PATTERN.sub(r"\1null", text))


def _translate(exc: Exception, key: str) -> ObjectStorageError:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code in _NOT_FOUND_CODES:
            return ObjectNotFound(key)
        return ObjectStorageError(f"{code or 'ClientError'} for {key}: {exc}")
    return ObjectStorageError(f"{type(exc).__name__} for {key}: {exc}")


class ObjectStorage:
    def __init__(
        self,
        bucket: str,
        *,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            session = boto3.session.Session()
            # Force signature version 4 (AWS4-HMAC-SHA256) - required by modern S3
            config = Config(
                signature_version="s3v4",
                s3={"addressing_style": "virtual"},
                connect_timeout=5,
                read_timeout=30,
                retries={"max_attempts": 3, "mode": "standard"},
            )
            self._client = session.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=self._access_key_id,
                aws_secret_access_key=self._secret_access_key,
                config=config,
            )
            logger.debug(f"Created S3 client for region: {self.region}")
        return self._client

    async def _call(self, key: str, fn, **kwargs):
        try:
            return await asyncio.to_thread(fn, Bucket=self.bucket, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc

    async def list_objects(self, prefix: str) -> List[StoredObject]:
        def _list(Bucket: str) -> List[StoredObject]:
            paginator = self.client.get_paginator("list_objects_v2")
            found = []
            for page in paginator.paginate(Bucket=Bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    found.append(
                        StoredObject(
                            key=item["Key"],
                            size=item.get("Size", 0),
                            last_modified=item.get("LastModified"),
                        )
                    )
            return found

        return await self._call(prefix, _list)

    async def list_prefixes(self, prefix: str) -> List[str]:
        """Immediate "folders" under ``prefix``."""

        def _list(Bucket: str) -> List[str]:
            paginator = self.client.get_paginator("list_objects_v2")
            prefixes = []
            for page in paginator.paginate(Bucket=Bucket, Prefix=prefix, Delimiter="/"):
                prefixes.extend(p["Prefix"] for p in page.get("CommonPrefixes", []))
            return prefixes

        return await self._call(prefix, _list)

    async def get_bytes(self, key: str) -> bytes:
        def _get(Bucket: str) -> bytes:
            response = self.client.get_object(Bucket=Bucket, Key=key)
            return response["Body"].read()

        return await self._call(key, _get)

    async def get_json(self, key: str) -> Any:
        raw = await self.get_bytes(key)
        try:
            return parse_document_json(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ObjectStorageError(f"Invalid JSON document {key}: {exc}") from exc

    async def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        await self._call(
            key,
            self.client.put_object,
            Key=key,
            Body=data,
            ContentType=content_type,
            Metadata=metadata or {},
        )

    async def put_json(self, key: str, document: Any, *, metadata: Optional[Dict[str, str]] = None) -> None:
        body = json.dumps(document, ensure_ascii=False, indent=2, default=str).encode("utf-8")
        await self.put_bytes(key, body, content_type="application/json", metadata=metadata)

    async def head_metadata(self, key: str) -> Dict[str, str]:
        response = await self._call(key, self.client.head_object, Key=key)
        return dict(response.get("Metadata") or {})

    async def exists(self, key: str) -> bool:
        try:
            await self.head_metadata(key)
        except ObjectNotFound:
            return False
        return True

    async def delete(self, key: str) -> None:
        await self._call(key, self.client.delete_object, Key=key)

    async def copy(self, source_key: str, dest_key: str, *, metadata: Optional[Dict[str, str]] = None) -> None:
        kwargs = {"Key": dest_key, "CopySource": {"Bucket": self.bucket, "Key": source_key}}
        if metadata is not None:
            kwargs["Metadata"] = metadata
            kwargs["MetadataDirective"] = "REPLACE"
        await self._call(source_key, self.client.copy_object, **kwargs)

    async def presign_get(self, key: str, *, expires: int = 900) -> str:
        def _presign(Bucket: str) -> str:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": Bucket, "Key": key},
                ExpiresIn=expires,
            )

        return await self._call(key, _presign)
