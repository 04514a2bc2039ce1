import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from core import cache_keys
from core.cache import CacheService, MemoryCacheStore
from core.cache_warming import (
    WARMING_COMPLETED,
    WARMING_FAILED,
    WARMING_INITIATED,
    WARMING_SKIPPED,
    CacheWarmer,
)
from core.invalidation import InvalidationResult
from tests.fakes import InMemoryObjectStorage


def _recording_factory(seen, status_for=lambda url: 200):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url.raw_path, "ascii"), dict(request.headers)))
        return httpx.Response(status_for(request.url.path), json={})

    def factory():
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://internal")

    return factory


@pytest.fixture
def cache():
    return CacheService(MemoryCacheStore())


@pytest.fixture
def storage():
    return InMemoryObjectStorage()


class TestInvalidateAndWarm:
    @pytest.mark.asyncio
    async def test_invalidation_runs_before_warming_and_warming_is_detached(self, cache, storage):
        order = []
        seen = []
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory(seen))

        async def invalidate():
            order.append("invalidate")
            return InvalidationResult(removed=2)

        async def targets():
            order.append("targets")
            return ["/api/s3/clientes"]

        report = await warmer.invalidate_and_warm("clientes", invalidate, targets)

        assert report.warming == WARMING_INITIATED
        assert report.as_dict() == {"invalidated": True, "removed": 2, "warming": WARMING_INITIATED}
        assert order == ["invalidate"]
        await warmer.drain()
        assert order == ["invalidate", "targets"]
        assert [path for path, _ in seen] == ["/api/s3/clientes"]
        assert warmer.pending == 0

    @pytest.mark.asyncio
    async def test_warm_requests_carry_internal_headers(self, cache, storage):
        seen = []
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory(seen))

        await warmer.invalidate_and_warm_clientes(wait=True)

        headers = seen[0][1]
        assert headers["x-internal-request"] == "true"
        assert headers["authorization"].startswith("Bearer ")
        assert headers["user-agent"] == "System-Cache-Warming/1.0"

    @pytest.mark.asyncio
    async def test_wait_reports_failed_when_a_url_fails(self, cache, storage):
        seen = []
        factory = _recording_factory(seen, status_for=lambda path: 401 if path.endswith("metrics") else 200)
        warmer = CacheWarmer(cache, storage, client_factory=factory)

        report = await warmer.invalidate_and_warm_users(wait=True)

        assert report.warming == WARMING_FAILED
        assert sorted(path for path, _ in seen) == ["/api/users", "/api/users/metrics"]

    @pytest.mark.asyncio
    async def test_no_client_factory_skips_warming(self, cache, storage):
        await cache.store.set(cache_keys.CLIENTES.key(), {"data": []}, ttl_seconds=60)
        warmer = CacheWarmer(cache, storage, client_factory=None)

        report = await warmer.invalidate_and_warm_clientes()

        assert report.warming == WARMING_SKIPPED
        assert report.invalidation.removed == 1

    @pytest.mark.asyncio
    async def test_target_resolution_failure_is_contained(self, cache, storage):
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory([]))
        invalidate = AsyncMock(return_value=InvalidationResult())

        async def targets():
            raise RuntimeError("listing failed")

        report = await warmer.invalidate_and_warm("x", invalidate, targets, wait=True)

        assert report.warming == WARMING_FAILED
        invalidate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_transport_errors_do_not_stop_other_urls(self, cache, storage):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            if request.url.path == "/boom":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={})

        warmer = CacheWarmer(
            cache,
            storage,
            client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://x"),
        )

        ok = await warmer.warm("mixed", ["/boom", "/fine", "/fine"])

        assert ok is False
        assert sorted(seen) == ["/boom", "/fine"]

    @pytest.mark.asyncio
    async def test_targets_are_capped(self, cache, storage):
        seen = []
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory(seen), max_urls=3)

        await warmer.warm("many", [f"/u/{i}" for i in range(10)])

        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_drain_cancels_after_timeout(self, cache, storage):
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory([]))

        async def slow_targets():
            await asyncio.sleep(10)
            return []

        await warmer.invalidate_and_warm("slow", AsyncMock(return_value=InvalidationResult()), slow_targets)
        assert warmer.pending == 1
        await warmer.drain(timeout=0.01)
        await asyncio.sleep(0)
        assert warmer.pending == 0


class TestOrderAndInventoryTargets:
    @pytest.mark.asyncio
    async def test_order_warming_covers_each_affected_year(self, cache, storage):
        seen = []
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory(seen))

        report = await warmer.invalidate_and_warm_orders({"fecha_pedido": "2023-12-31", "year": 2024}, wait=True)

        assert report.warming == WARMING_COMPLETED
        assert sorted(path for path, _ in seen) == [
            "/api/s3/pedidos",
            "/api/s3/pedidos?year=2023",
            "/api/s3/pedidos?year=2024",
        ]

    @pytest.mark.asyncio
    async def test_inventory_targets_follow_storage_folders(self, cache, storage):
        storage.put_document("Inventario/2024/Marzo/inventario-row001.json", [])
        storage.put_document("Inventario/2024/Enero/inventario-row001.json", [])
        storage.put_document("Inventario/2023/Diciembre/inventario-row001.json", [])
        storage.put_raw("Inventario/Fichas Tecnicas/Lino.pdf", b"%PDF")
        warmer = CacheWarmer(cache, storage, client_factory=None)

        targets = await warmer.inventory_targets()

        assert targets == [
            "/api/s3/inventario",
            "/api/s3/inventario?year=2024",
            "/api/s3/inventario?month=03&year=2024",
            "/api/s3/inventario?month=01&year=2024",
            "/api/s3/inventario?year=2023",
            "/api/s3/inventario?month=12&year=2023",
        ]


class TestRollAndReturnTargets:
    @pytest.mark.asyncio
    async def test_returns_drop_sold_rolls_and_stock_then_warm_them(self, cache, storage):
        storage.put_document("Inventario/2024/Marzo/inventario-row001.json", [])
        await cache.store.set(cache_keys.SOLD_ROLLS.key(days_back="30"), {"rolls": []}, ttl_seconds=600)
        await cache.store.set(cache_keys.ORDER_ROLLS.key(oc="OC-1"), {"rolls": []}, ttl_seconds=600)
        seen = []
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory(seen))

        report = await warmer.invalidate_and_warm_returns(wait=True)

        assert report.invalidation.removed == 2
        assert await cache.store.keys("cache:*") == []
        paths = [path for path, _ in seen]
        assert "/api/returns/get-sold-rolls" in paths
        assert "/api/packing-list/get-available-orders" in paths
        assert "/api/s3/inventario?month=03&year=2024" in paths

    @pytest.mark.asyncio
    async def test_pending_order_warms_check_pending_and_its_year(self, cache, storage):
        seen = []
        warmer = CacheWarmer(cache, storage, client_factory=_recording_factory(seen))

        await warmer.invalidate_and_warm_pending_order({"fecha_pedido": "2024-04-02"}, wait=True)

        assert sorted(path for path, _ in seen) == [
            "/api/orders/check-pending",
            "/api/s3/pedidos",
            "/api/s3/pedidos?year=2024",
        ]
