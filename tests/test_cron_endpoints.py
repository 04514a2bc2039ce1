import httpx
import pytest
import pytest_asyncio

from config import RATE_LIMITS
from core import cache_keys
from core.activity import ActivityTracker
from core.cache import MemoryCacheStore
from core.rate_limit import RateLimiter


class TestWeeklyInventory:
    @pytest.mark.asyncio
    async def test_invalidates_and_waits_for_warming(self, app, client, storage, system_headers, cache_store):
        storage.put_document("Inventario/2024/Marzo/inventario-row001.json", [{"OC": "OC-1", "Cantidad": 1, "Costo": 1}])
        await cache_store.set(cache_keys.INVENTORY.key(year="2024"), {"data": "stale"}, ttl_seconds=600)

        response = await client.post("/api/cron/weekly-inventory", headers=system_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["cache"] == {"invalidated": True, "removed": 1, "warming": "completed"}
        assert app.state.warmer.pending == 0
        fresh = await cache_store.get(cache_keys.INVENTORY.key(year="2024"))
        assert fresh["total_items"] == 1
        assert await cache_store.get(cache_keys.INVENTORY.key(year="2024", month="03")) is not None

    @pytest.mark.asyncio
    async def test_rejects_user_tokens(self, client, major_admin_headers):
        response = await client.post("/api/cron/weekly-inventory", headers=major_admin_headers)
        assert response.status_code == 403


class TestActivitySweep:
    @pytest.mark.asyncio
    async def test_sweep(self, app, client, system_headers):
        response = await client.post("/api/cron/activity-sweep", headers=system_headers)
        assert response.json() == {"success": True, "removed": 0, "tracked_users": 0}


@pytest_asyncio.fixture
async def limited_client(test_db, storage):
    from main import create_app

    app = create_app(
        cache_store=MemoryCacheStore(),
        rate_limiter=RateLimiter(RATE_LIMITS),
        storage=storage,
        activity_tracker=ActivityTracker(),
    )
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


class TestCronRateLimit:
    @pytest.mark.asyncio
    async def test_internal_cron_calls_are_still_limited(self, limited_client, system_headers):
        limit, _ = RATE_LIMITS["cron"]
        statuses = [
            (await limited_client.post("/api/cron/activity-sweep", headers=system_headers)).status_code
            for _ in range(limit + 1)
        ]
        assert statuses == [200] * limit + [429]
