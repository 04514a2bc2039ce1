from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from core import cache_keys
from core.cache import CacheService, MemoryCacheStore, with_cache
from tests.fakes import BrokenCacheStore


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_entries_expire(self):
        clock = FakeClock()
        store = MemoryCacheStore(clock=clock)
        await store.set("cache:a", {"v": 1}, ttl_seconds=10)
        assert await store.get("cache:a") == {"v": 1}
        assert await store.ttl("cache:a") == 10

        clock.now += 10
        assert await store.get("cache:a") is None
        assert await store.ttl("cache:a") == -2

    @pytest.mark.asyncio
    async def test_hits_return_copies(self):
        store = MemoryCacheStore()
        await store.set("cache:a", {"items": [1]}, ttl_seconds=60)
        first = await store.get("cache:a")
        first["items"].append(2)
        assert await store.get("cache:a") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_delete_pattern_and_keys(self):
        store = MemoryCacheStore()
        await store.set("cache:api:s3:pedidos:client=:year=2024", 1, ttl_seconds=60)
        await store.set("cache:api:s3:pedidos:client=:year=2023", 2, ttl_seconds=60)
        await store.set("cache:api:s3:inventario:month=:year=", 3, ttl_seconds=60)

        assert len(await store.keys("cache:api:s3:pedidos:*")) == 2
        assert await store.delete_pattern("cache:api:s3:pedidos:client=*:year=2024") == 1
        assert await store.keys("cache:api:s3:pedidos:*") == ["cache:api:s3:pedidos:client=:year=2023"]

    @pytest.mark.asyncio
    async def test_max_keys_evicts_entry_closest_to_expiry(self):
        store = MemoryCacheStore(max_keys=2, clock=FakeClock())
        await store.set("cache:short", 1, ttl_seconds=5)
        await store.set("cache:long", 2, ttl_seconds=500)
        await store.set("cache:new", 3, ttl_seconds=50)
        assert await store.get("cache:short") is None
        assert await store.get("cache:long") == 2
        assert await store.get("cache:new") == 3


class TestCacheService:
    @pytest.mark.asyncio
    async def test_get_or_set_calls_producer_once(self):
        service = CacheService(MemoryCacheStore())
        producer = AsyncMock(return_value={"fichas": []})

        first = await service.get_or_set(cache_keys.FICHAS_TECNICAS, {}, producer)
        second = await service.get_or_set(cache_keys.FICHAS_TECNICAS, {}, producer)

        assert first.hit is False and second.hit is True
        assert second.value == {"fichas": []}
        assert first.key == second.key == "cache:api:s3:fichas-tecnicas"
        producer.assert_awaited_once()
        assert service.stats() == {"hits": 1, "misses": 1, "errors": 0}

    @pytest.mark.asyncio
    async def test_hooks_receive_the_key(self):
        service = CacheService(MemoryCacheStore())
        on_hit, on_miss = MagicMock(), MagicMock()
        producer = AsyncMock(return_value=[1])
        params = {"days_back": "7"}

        await service.get_or_set(cache_keys.SOLD_ROLLS, params, producer, on_cache_hit=on_hit, on_cache_miss=on_miss)
        await service.get_or_set(cache_keys.SOLD_ROLLS, params, producer, on_cache_hit=on_hit, on_cache_miss=on_miss)

        key = cache_keys.SOLD_ROLLS.key(days_back="7")
        on_miss.assert_called_once_with(key)
        on_hit.assert_called_once_with(key)

    @pytest.mark.asyncio
    async def test_skip_cache_bypasses_read_and_write(self):
        store = MemoryCacheStore()
        service = CacheService(store)
        producer = AsyncMock(return_value={"v": 1})

        result = await service.get_or_set(cache_keys.CLIENTES, {}, producer, skip_cache=True)

        assert result.hit is False
        assert await store.keys("cache:*") == []

    @pytest.mark.asyncio
    async def test_none_is_never_cached(self):
        store = MemoryCacheStore()
        service = CacheService(store)
        producer = AsyncMock(return_value=None)

        await service.get_or_set(cache_keys.CLIENTES, {}, producer)
        await service.get_or_set(cache_keys.CLIENTES, {}, producer)

        assert producer.await_count == 2
        assert await store.keys("cache:*") == []

    @pytest.mark.asyncio
    async def test_producer_errors_propagate_and_are_not_cached(self):
        store = MemoryCacheStore()
        service = CacheService(store)
        producer = AsyncMock(side_effect=RuntimeError("S3 down"))

        with pytest.raises(RuntimeError):
            await service.get_or_set(cache_keys.CLIENTES, {}, producer)
        assert await store.keys("cache:*") == []

    @pytest.mark.asyncio
    async def test_store_failures_degrade_to_producer(self):
        service = CacheService(BrokenCacheStore())
        producer = AsyncMock(return_value={"v": 1})

        result = await service.get_or_set(cache_keys.CLIENTES, {}, producer)

        assert result.value == {"v": 1}
        assert result.hit is False
        assert service.errors == 2

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_resource_ttl(self):
        store = MemoryCacheStore()
        service = CacheService(store)
        await service.get_or_set(cache_keys.ORDERS, {"year": "2020"}, AsyncMock(return_value=[]), ttl=42)
        assert await store.ttl(cache_keys.ORDERS.key(year="2020")) in (41, 42)


def _cached_app(store, producer):
    app = FastAPI()
    app.state.cache = CacheService(store)
    handler = with_cache(
        producer,
        resource=cache_keys.INVENTORY,
        skip_cache=lambda request: request.query_params.get("refresh") == "true",
    )

    @app.get("/inventario")
    async def inventario(request: Request):
        return await handler(request)

    @app.post("/inventario")
    async def inventario_post(request: Request):
        return await handler(request)

    return app


class TestWithCache:
    def test_miss_then_hit_with_headers(self):
        calls = []

        async def producer(request):
            calls.append(request.url.query)
            return JSONResponse({"data": [1, 2]})

        store = MemoryCacheStore()
        client = TestClient(_cached_app(store, producer))

        first = client.get("/inventario", params={"year": "2024"})
        second = client.get("/inventario", params={"year": "2024"})

        key = "cache:api:s3:inventario:month=:year=2024"
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.headers["X-Cache-Key"] == key
        assert second.json()["data"] == [1, 2]
        assert second.json()["_cache"]["hit"] is True
        assert len(calls) == 1

    def test_refresh_skips_cache(self):
        calls = []

        async def producer(request):
            calls.append(1)
            return JSONResponse({"data": []})

        client = TestClient(_cached_app(MemoryCacheStore(), producer))
        client.get("/inventario")
        response = client.get("/inventario", params={"refresh": "true"})

        assert "X-Cache" not in response.headers
        assert len(calls) == 2

    def test_non_200_is_not_stored(self):
        async def producer(request):
            return JSONResponse({"detail": "boom"}, status_code=500)

        store = MemoryCacheStore()
        client = TestClient(_cached_app(store, producer))
        response = client.get("/inventario")

        assert response.status_code == 500
        assert client.get("/inventario").status_code == 500
        assert store._data == {}

    def test_non_get_is_never_cached(self):
        async def producer(request):
            return JSONResponse({"ok": True})

        store = MemoryCacheStore()
        client = TestClient(_cached_app(store, producer))
        client.post("/inventario")
        assert store._data == {}

    def test_unreachable_store_still_serves(self):
        async def producer(request):
            return JSONResponse({"data": ["row"]})

        client = TestClient(_cached_app(BrokenCacheStore(), producer))
        response = client.get("/inventario")

        assert response.status_code == 200
        assert response.json()["data"] == ["row"]
