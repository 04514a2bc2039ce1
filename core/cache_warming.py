"""Invalidate-and-warm.

Invalidation is always awaited first. Warming then re-requests the hot GET
routes with internal credentials, so the entries it writes are produced by the
same handlers and keys as real traffic. By default warming runs as a detached
task: the mutation's response never waits on it and its failures are only
logged.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Set, Union
from urllib.parse import quote, urlencode

import httpx

from auth import internal_headers
from core import invalidation
from core.cache import CacheService
from core.invalidation import InvalidationResult
from utils.dates import month_number
from utils.storage import ObjectStorage

logger = logging.getLogger(__name__)

WARMING_INITIATED = "initiated"
WARMING_COMPLETED = "completed"
WARMING_FAILED = "failed"
WARMING_SKIPPED = "skipped"

INVENTORY_ROOT = "Inventario/"
_YEAR_FOLDER = re.compile(r"^\d{4}$")

Targets = Union[List[str], Callable[[], Awaitable[List[str]]]]
ClientFactory = Callable[[], httpx.AsyncClient]


@dataclass
class WarmReport:
    invalidation: InvalidationResult
    warming: str
    targets: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {**self.invalidation.as_dict(), "warming": self.warming}


class CacheWarmer:
    def __init__(
        self,
        cache: CacheService,
        storage: ObjectStorage,
        *,
        client_factory: Optional[ClientFactory],
        max_urls: int = 11,
    ):
        self.cache = cache
        self.storage = storage
        self.client_factory = client_factory
        self.max_urls = max_urls
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def invalidate_and_warm(
        self,
        name: str,
        invalidate: Callable[[], Awaitable[InvalidationResult]],
        targets: Targets,
        *,
        wait: bool = False,
    ) -> WarmReport:
        result = await invalidate()

        if self.client_factory is None:
            return WarmReport(result, WARMING_SKIPPED)

        if wait:
            ok = await self.warm(name, targets)
            return WarmReport(result, WARMING_COMPLETED if ok else WARMING_FAILED)

        task = asyncio.create_task(self.warm(name, targets), name=f"cache-warm:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return WarmReport(result, WARMING_INITIATED)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"CACHE_WARM | task={task.get_name()} | cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"CACHE_WARM | task={task.get_name()} | error={type(exc).__name__}: {exc}",
                exc_info=exc,
            )

    async def warm(self, name: str, targets: Targets) -> bool:
        """Request every target once; a failing URL never stops the others."""
        start = time.time()
        try:
            urls = await targets() if callable(targets) else list(targets)
        except Exception as exc:
            logger.warning(f"CACHE_WARM | name={name} | could not resolve targets: {type(exc).__name__}: {exc}")
            return False
        urls = list(dict.fromkeys(urls))[: self.max_urls]
        if not urls:
            return True

        async with self.client_factory() as client:
            results = await asyncio.gather(
                *(self._warm_url(client, url) for url in urls),
                return_exceptions=True,
            )

        warmed = sum(1 for r in results if r is True)
        for url, r in zip(urls, results):
            if isinstance(r, BaseException):
                logger.warning(f"CACHE_WARM | name={name} | url={url} | error={type(r).__name__}: {r}")
        logger.info(
            f"CACHE_WARM | name={name} | warmed={warmed}/{len(urls)} | time={time.time() - start:.3f}s"
        )
        return warmed == len(urls)

    async def _warm_url(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            response = await client.get(url, headers=internal_headers())
        except httpx.HTTPError as exc:
            logger.warning(f"CACHE_WARM | url={url} | error={type(exc).__name__}: {exc}")
            return False
        if response.status_code == 401:
            logger.warning(f"CACHE_WARM | url={url} | status=401 | internal request headers were rejected")
            return False
        if response.status_code != 200:
            logger.warning(f"CACHE_WARM | url={url} | status={response.status_code}")
            return False
        return True

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding warm tasks (shutdown and tests)."""
        while self._tasks:
            pending = list(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                return

    async def inventory_targets(self) -> List[str]:
        """The all-inventory listing plus the most recent month folders."""
        urls = ["/api/s3/inventario"]
        years = [
            p[len(INVENTORY_ROOT):].strip("/")
            for p in await self.storage.list_prefixes(INVENTORY_ROOT)
        ]
        for year in sorted((y for y in years if _YEAR_FOLDER.match(y)), reverse=True):
            urls.append("/api/s3/inventario?" + urlencode({"year": year}))
            year_prefix = f"{INVENTORY_ROOT}{year}/"
            months = []
            for folder in await self.storage.list_prefixes(year_prefix):
                number = month_number(folder[len(year_prefix):].strip("/"))
                if number is not None:
                    months.append(number)
            for number in sorted(set(months), reverse=True):
                urls.append("/api/s3/inventario?" + urlencode({"month": f"{number:02d}", "year": year}))
            if len(urls) >= self.max_urls:
                break
        return urls[: self.max_urls]

    async def invalidate_and_warm_inventory(self, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "inventory",
            lambda: invalidation.invalidate_inventory(self.cache),
            self.inventory_targets,
            wait=wait,
        )

    async def invalidate_and_warm_fichas_tecnicas(self, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "fichas-tecnicas",
            lambda: invalidation.invalidate_fichas_tecnicas(self.cache),
            ["/api/s3/fichas-tecnicas"],
            wait=wait,
        )

    async def invalidate_and_warm_orders(self, order: Mapping[str, Any], *, wait: bool = False) -> WarmReport:
        years = invalidation.order_years(order)
        targets = ["/api/s3/pedidos"] + [f"/api/s3/pedidos?year={year}" for year in years]
        return await self.invalidate_and_warm(
            "orders",
            lambda: invalidation.invalidate_cache_for_order_year(self.cache, order),
            targets,
            wait=wait,
        )

    async def invalidate_and_warm_price_history(self, fabric_id: str, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "price-history",
            lambda: invalidation.invalidate_price_history(self.cache, fabric_id),
            ["/api/s3/historial-precios", f"/api/s3/historial-precios/{quote(fabric_id, safe='')}"],
            wait=wait,
        )

    async def invalidate_and_warm_sold_rolls(self, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "sold-rolls",
            lambda: invalidation.invalidate_sold_rolls(self.cache),
            ["/api/returns/get-sold-rolls"],
            wait=wait,
        )

    async def invalidate_and_warm_users(self, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "users",
            lambda: invalidation.invalidate_users(self.cache),
            ["/api/users", "/api/users/metrics"],
            wait=wait,
        )

    async def invalidate_and_warm_clientes(self, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "clientes",
            lambda: invalidation.invalidate_clientes(self.cache),
            ["/api/s3/clientes"],
            wait=wait,
        )

    async def invalidate_and_warm_proveedores(self, *, wait: bool = False) -> WarmReport:
        return await self.invalidate_and_warm(
            "proveedores",
            lambda: invalidation.invalidate_proveedores(self.cache),
            ["/api/s3/proveedores"],
            wait=wait,
        )

    async def invalidate_and_warm_packing_list(self, *, wait: bool = False) -> WarmReport:
        # Roll lookups are keyed by tela/color and are only refilled on demand.
        return await self.invalidate_and_warm(
            "packing-list",
            lambda: invalidation.invalidate_packing_list(self.cache),
            ["/api/packing-list/get-available-orders"],
            wait=wait,
        )

    async def invalidate_and_warm_stock(self, *, wait: bool = False) -> WarmReport:
        async def targets() -> List[str]:
            return ["/api/packing-list/get-available-orders"] + await self.inventory_targets()

        return await self.invalidate_and_warm(
            "stock",
            lambda: invalidation.invalidate_stock(self.cache),
            targets,
            wait=wait,
        )

    async def invalidate_and_warm_returns(self, *, wait: bool = False) -> WarmReport:
        async def invalidate() -> InvalidationResult:
            sold = await invalidation.invalidate_sold_rolls(self.cache)
            return sold.merge(await invalidation.invalidate_stock(self.cache))

        async def targets() -> List[str]:
            return [
                "/api/returns/get-sold-rolls",
                "/api/packing-list/get-available-orders",
            ] + await self.inventory_targets()

        return await self.invalidate_and_warm("returns", invalidate, targets, wait=wait)

    async def invalidate_and_warm_pending_order(self, order: Mapping[str, Any], *, wait: bool = False) -> WarmReport:
        years = invalidation.order_years(order)
        targets = ["/api/orders/check-pending", "/api/s3/pedidos"] + [f"/api/s3/pedidos?year={year}" for year in years]
        return await self.invalidate_and_warm(
            "pending-orders",
            lambda: invalidation.invalidate_pending_order(self.cache, order),
            targets,
            wait=wait,
        )
