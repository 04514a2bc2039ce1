"""Rate limiting helpers (Redis preferred, in-memory fallback)."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Deque, Dict, List, Mapping, Optional, Tuple

import redis.asyncio as aioredis
from fastapi import Request
from fastapi.responses import JSONResponse

from auth import is_internal_request
from config import RATE_LIMIT_DEFAULT_MESSAGE

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"


@dataclass
class RateLimitPolicy:
    limit: int
    window_seconds: int


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset: int
    retry_after_seconds: int


class RateLimiter:
    def __init__(
        self,
        policies: Mapping[str, Tuple[int, int]],
        *,
        redis_url: str = "",
        socket_timeout: float = 2.0,
        clock: Callable[[], float] = time.time,
    ):
        self.policies = {kind: RateLimitPolicy(int(l), int(w)) for kind, (l, w) in policies.items()}
        self._clock = clock
        self._lock = Lock()
        self._buckets: Dict[str, Deque[float]] = {}
        self._longest_window = max((p.window_seconds for p in self.policies.values()), default=0)
        self._last_prune = clock()
        self._redis = None
        if redis_url:
            self._redis = aioredis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )

    def policy(self, kind: str) -> RateLimitPolicy:
        try:
            return self.policies[kind]
        except KeyError:
            raise ValueError(f"Unknown rate limit classification: {kind}") from None

    async def check(self, kind: str, identifier: str) -> RateLimitResult:
        policy = self.policy(kind)
        key = f"{KEY_PREFIX}:{kind}:{identifier}"
        if policy.limit <= 0 or policy.window_seconds <= 0:
            return RateLimitResult(True, policy.limit, policy.limit, 0, 0)

        if self._redis is not None:
            try:
                return await self._check_redis(key, policy)
            except Exception as exc:
                logger.warning(f"Rate limit store unavailable, using in-memory window: {exc!r}")

        return self._check_memory(key, policy)

    async def _check_redis(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        # Atomic counter with TTL.
        pipe = self._redis.pipeline()
        pipe.incr(key, 1)
        pipe.ttl(key)
        current, ttl = await pipe.execute()
        if ttl is None or int(ttl) < 0:
            await self._redis.expire(key, policy.window_seconds)
            ttl = policy.window_seconds
        ttl = int(ttl)
        now = int(self._clock())
        current = int(current)
        remaining = max(0, policy.limit - current)
        if current <= policy.limit:
            return RateLimitResult(True, policy.limit, remaining, now + ttl, 0)
        return RateLimitResult(False, policy.limit, 0, now + ttl, max(1, ttl))

    def _check_memory(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        # Sliding window.
        now = self._clock()
        with self._lock:
            if now - self._last_prune >= self._longest_window:
                self._prune_locked(now)
            bucket = self._buckets.setdefault(key, deque())
            cutoff = now - policy.window_seconds
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()
            if len(bucket) < policy.limit:
                bucket.append(now)
                reset = int(math.ceil(bucket[0] + policy.window_seconds))
                return RateLimitResult(True, policy.limit, policy.limit - len(bucket), reset, 0)
            reset_at = bucket[0] + policy.window_seconds
            retry_after = int(math.ceil(reset_at - now))
            return RateLimitResult(False, policy.limit, 0, int(math.ceil(reset_at)), max(1, retry_after))

    def _prune_locked(self, now: float) -> None:
        # Every policy window has passed since the newest hit of a dropped key.
        horizon = now - self._longest_window
        stale = [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] <= horizon]
        for key in stale:
            del self._buckets[key]
        self._last_prune = now

    def tracked_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._buckets)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("true-client-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


async def rate_limit(
    request: Request,
    *,
    kind: str,
    message: str = RATE_LIMIT_DEFAULT_MESSAGE,
    identifier_fn: Callable[[Request], str] = get_client_ip,
    exempt_internal: bool = True,
) -> Optional[JSONResponse]:
    """Admission gate. ``None`` means proceed; otherwise return the 429 as-is.

    Internal (system) requests are exempt unless ``exempt_internal`` is off, so
    cache warming is never throttled while cron quotas still count.
    """
    if exempt_internal and is_internal_request(request):
        return None

    limiter: RateLimiter = request.app.state.rate_limiter
    limiter.policy(kind)
    identifier = identifier_fn(request)
    try:
        result = await limiter.check(kind, identifier)
    except Exception as exc:
        logger.warning(f"Rate limiter failed open for {kind}:{identifier}: {exc!r}")
        return None

    if result.allowed:
        return None

    logger.info(
        f"RATE_LIMITED | kind={kind} | client={identifier} | path={request.url.path} | "
        f"retry_after={result.retry_after_seconds}s"
    )
    return JSONResponse(
        {"error": message},
        status_code=429,
        headers={
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset),
            "Retry-After": str(result.retry_after_seconds),
        },
    )


class RateLimitExceeded(Exception):
    """Carries the ready-made 429 out of a dependency; main.py returns it unchanged."""

    def __init__(self, response: JSONResponse):
        super().__init__("rate limit exceeded")
        self.response = response


def rate_limit_dependency(kind: str, message: str = RATE_LIMIT_DEFAULT_MESSAGE, *, exempt_internal: bool = True):
    async def dependency(request: Request) -> None:
        rejection = await rate_limit(request, kind=kind, message=message, exempt_internal=exempt_internal)
        if rejection is not None:
            raise RateLimitExceeded(rejection)

    return dependency
