"""Read-through cache over Redis (preferred) or an in-process TTL store.

Store faults never fail a request: reads degrade to misses and writes are
dropped, both logged as warnings. Producer errors are the request's own and
propagate untouched, so an error is never stored under a resource key.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

import redis.asyncio as aioredis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from core.cache_keys import CacheResource
from utils.logging_helpers import log_warning

logger = logging.getLogger(__name__)

CACHEABLE_METHODS = ("GET",)
DELETE_BATCH_SIZE = 500


class CacheStore:
    """Minimum surface the cache layer needs from a key/value store."""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError

    async def keys(self, pattern: str) -> List[str]:
        raise NotImplementedError

    async def ttl(self, key: str) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class RedisCacheStore(CacheStore):
    def __init__(self, url: str, *, socket_timeout: float = 2.0):
        self.url = url
        self._client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        await self._client.setex(key, int(ttl_seconds), json.dumps(value, default=str))

    async def delete_pattern(self, pattern: str) -> int:
        removed = 0
        batch: List[str] = []
        async for key in self._client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= DELETE_BATCH_SIZE:
                removed += await self._client.delete(*batch)
                batch = []
        if batch:
            removed += await self._client.delete(*batch)
        return removed

    async def keys(self, pattern: str) -> List[str]:
        return [key async for key in self._client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE)]

    async def ttl(self, key: str) -> int:
        return int(await self._client.ttl(key))

    async def close(self) -> None:
        await self._client.aclose()


@dataclass
class _Entry:
    payload: str
    expires_at: float


class MemoryCacheStore(CacheStore):
    """Lock-guarded TTL map. Values are stored as JSON so hits return copies."""

    def __init__(self, *, max_keys: int = 10_000, clock: Callable[[], float] = time.time):
        self._max_keys = max_keys
        self._clock = clock
        self._lock = Lock()
        self._data: Dict[str, _Entry] = {}

    def _live_entry(self, key: str, now: float) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            self._data.pop(key, None)
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            payload = entry.payload if entry else None
        return json.loads(payload) if payload is not None else None

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        payload = json.dumps(value, default=str)
        expires_at = self._clock() + float(ttl_seconds)
        with self._lock:
            if key not in self._data and len(self._data) >= self._max_keys:
                # Drop the entry closest to expiry.
                victim = min(self._data, key=lambda k: self._data[k].expires_at)
                self._data.pop(victim, None)
            self._data[key] = _Entry(payload=payload, expires_at=expires_at)

    async def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            doomed = [key for key in self._data if fnmatchcase(key, pattern)]
            for key in doomed:
                del self._data[key]
        return len(doomed)

    async def keys(self, pattern: str) -> List[str]:
        now = self._clock()
        with self._lock:
            return [
                key
                for key in list(self._data)
                if fnmatchcase(key, pattern) and self._live_entry(key, now) is not None
            ]

    async def ttl(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            entry = self._live_entry(key, now)
            if entry is None:
                return -2
            return max(0, int(entry.expires_at - now))


def build_cache_store(url: str, *, socket_timeout: float, max_keys: int) -> CacheStore:
    if url:
        logger.info("Cache store: redis")
        return RedisCacheStore(url, socket_timeout=socket_timeout)
    logger.info("Cache store: in-process memory (CACHE_REDIS_URL not set)")
    return MemoryCacheStore(max_keys=max_keys)


@dataclass
class CacheResult:
    value: Any
    hit: bool
    key: str


Hook = Optional[Callable[[str], None]]


class CacheService:
    def __init__(self, store: CacheStore):
        self.store = store
        self.hits = 0
        self.misses = 0
        self.errors = 0

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self.store.get(key)
        except Exception as exc:
            self.errors += 1
            log_warning(logger, "Cache read failed, treating as miss", key=key, error=repr(exc))
            return None

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> bool:
        try:
            await self.store.set(key, value, ttl_seconds=ttl_seconds)
            return True
        except Exception as exc:
            self.errors += 1
            log_warning(logger, "Cache write failed, value not stored", key=key, error=repr(exc))
            return False

    async def get_or_set(
        self,
        resource: CacheResource,
        params: Optional[Mapping[str, Any]],
        producer: Callable[[], Awaitable[Any]],
        *,
        ttl: Optional[int] = None,
        skip_cache: bool = False,
        on_cache_hit: Hook = None,
        on_cache_miss: Hook = None,
    ) -> CacheResult:
        key = resource.key(**dict(params or {}))
        if skip_cache:
            return CacheResult(value=await producer(), hit=False, key=key)

        cached = await self.get(key)
        if cached is not None:
            self.hits += 1
            if on_cache_hit:
                on_cache_hit(key)
            return CacheResult(value=cached, hit=True, key=key)

        self.misses += 1
        if on_cache_miss:
            on_cache_miss(key)
        value = await producer()
        if value is not None:
            await self.set(key, value, ttl_seconds=ttl or resource.ttl)
        return CacheResult(value=value, hit=False, key=key)

    def stats(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "errors": self.errors}


def request_cache_params(resource: CacheResource, request: Request) -> Dict[str, Any]:
    """Pick the resource's declared params from the path, then the query string."""
    params: Dict[str, Any] = {}
    for name in resource.params:
        if name in request.path_params:
            params[name] = request.path_params[name]
            continue
        values = request.query_params.getlist(name)
        if not values:
            params[name] = None
        elif len(values) == 1:
            params[name] = values[0]
        else:
            params[name] = values
    return params


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _with_cache_marker(body: Any, *, hit: bool, key: str) -> Any:
    if isinstance(body, dict):
        return {**body, "_cache": {"hit": hit, "key": key, "timestamp": _now_iso()}}
    return body


RequestPredicate = Callable[[Request], bool]
TtlOption = Union[int, Callable[[Request], int], None]


def with_cache(
    producer: Callable[[Request], Awaitable[Response]],
    *,
    resource: CacheResource,
    ttl: TtlOption = None,
    skip_cache: Optional[RequestPredicate] = None,
    on_cache_hit: Hook = None,
    on_cache_miss: Hook = None,
) -> Callable[[Request], Awaitable[Response]]:
    """Wrap a request handler with read-through caching of its JSON body.

    The cache service is taken from ``request.app.state.cache``. Only GET
    responses with status 200 are stored.
    """

    async def handler(request: Request) -> Response:
        if request.method not in CACHEABLE_METHODS:
            return await producer(request)
        if skip_cache is not None and skip_cache(request):
            return await producer(request)

        cache: CacheService = request.app.state.cache
        key = resource.key(**request_cache_params(resource, request))

        cached = await cache.get(key)
        if cached is not None:
            cache.hits += 1
            if on_cache_hit:
                on_cache_hit(key)
            return JSONResponse(
                _with_cache_marker(cached, hit=True, key=key),
                headers={"X-Cache": "HIT", "X-Cache-Key": key},
            )

        cache.misses += 1
        if on_cache_miss:
            on_cache_miss(key)
        response = await producer(request)
        if response.status_code == 200 and isinstance(response, JSONResponse):
            body = json.loads(response.body)
            ttl_seconds = ttl(request) if callable(ttl) else (ttl or resource.ttl)
            await cache.set(key, body, ttl_seconds=ttl_seconds)
            response = JSONResponse(
                _with_cache_marker(body, hit=False, key=key),
                status_code=200,
                headers={"X-Cache": "MISS", "X-Cache-Key": key},
            )
        return response

    return handler
