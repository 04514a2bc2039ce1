from unittest.mock import patch

import pytest

from core import cache_keys, invalidation
from core.cache import CacheService, MemoryCacheStore
from tests.fakes import BrokenCacheStore


async def _seed(store, *keys):
    for key in keys:
        await store.set(key, {"k": key}, ttl_seconds=600)


@pytest.fixture
def store():
    return MemoryCacheStore()


@pytest.fixture
def cache(store):
    return CacheService(store)


class TestOrderYears:
    def test_fecha_pedido_and_storage_year_both_count(self):
        assert invalidation.order_years({"fecha_pedido": "2023-12-30", "year": 2024}) == [2023, 2024]

    def test_matching_years_are_deduplicated(self):
        assert invalidation.order_years({"fecha_pedido": "2024-05-01", "year": "2024"}) == [2024]

    def test_spreadsheet_style_dates(self):
        assert invalidation.order_years({"fecha_pedido": "15/03/2022"}) == [2022]

    def test_falls_back_to_current_year(self):
        with patch.object(invalidation, "current_year", return_value=2031):
            assert invalidation.order_years({}) == [2031]
            assert invalidation.order_years({"fecha_pedido": "not a date"}) == [2031]


class TestInvalidateCacheForOrderYear:
    @pytest.mark.asyncio
    async def test_removes_that_year_and_all_years_listings_only(self, cache, store):
        orders = cache_keys.ORDERS
        await _seed(
            store,
            orders.key(year="2024"),
            orders.key(year="2024", client="ACME"),
            orders.key(),
            orders.key(client="ACME"),
            orders.key(year="2023"),
            cache_keys.INVENTORY.key(),
        )

        result = await invalidation.invalidate_cache_for_order_year(cache, {"fecha_pedido": "2024-02-01"})

        assert result.ok
        assert result.removed == 4
        remaining = sorted(await store.keys("cache:*"))
        assert remaining == sorted([orders.key(year="2023"), cache_keys.INVENTORY.key()])


class TestInvalidateUserActivityCache:
    @pytest.mark.asyncio
    async def test_single_user(self, cache, store):
        await _seed(
            store,
            cache_keys.USERS.key(),
            cache_keys.USERS.key(role="seller"),
            cache_keys.USER_ACTIVITY.key(user_id="u1"),
            cache_keys.USER_ACTIVITY.key(user_id="u2"),
            cache_keys.DASHBOARD_USERS.key(),
        )

        result = await invalidation.invalidate_user_activity_cache(cache, "u1")

        assert result.removed == 4
        assert await store.keys("cache:*") == [cache_keys.USER_ACTIVITY.key(user_id="u2")]

    @pytest.mark.asyncio
    async def test_all_users(self, cache, store):
        await _seed(
            store,
            cache_keys.USER_ACTIVITY.key(user_id="u1"),
            cache_keys.USER_ACTIVITY.key(user_id="u2"),
            cache_keys.CLIENTES.key(),
        )

        await invalidation.invalidate_user_activity_cache(cache)

        assert await store.keys("cache:*") == [cache_keys.CLIENTES.key()]


class TestResourceInvalidators:
    @pytest.mark.asyncio
    async def test_price_history_for_one_fabric(self, cache, store):
        fabric = cache_keys.PRICE_HISTORY_FABRIC
        await _seed(
            store,
            cache_keys.PRICE_HISTORY.key(),
            fabric.key(fabric_id="LINO-01"),
            fabric.key(fabric_id="LINO-01", provider="Textil MX"),
            fabric.key(fabric_id="SEDA-02"),
        )

        await invalidation.invalidate_price_history(cache, "LINO-01")

        assert await store.keys("cache:*") == [fabric.key(fabric_id="SEDA-02")]

    @pytest.mark.asyncio
    async def test_inventory_covers_every_period(self, cache, store):
        inventory = cache_keys.INVENTORY
        await _seed(store, inventory.key(), inventory.key(year=2024), inventory.key(year=2024, month="03"))

        result = await invalidation.invalidate_inventory(cache)

        assert result.removed == 3
        assert result.as_dict() == {"invalidated": True, "removed": 3}

    @pytest.mark.asyncio
    async def test_packing_list_drops_all_three_roll_reads(self, cache, store):
        await _seed(
            store,
            cache_keys.PACKING_LIST_ROLLS.key(tela="Lino", color="Azul"),
            cache_keys.PACKING_LIST_ROLLS.key(tela="Seda", color="Rojo"),
            cache_keys.AVAILABLE_ORDERS.key(),
            cache_keys.ORDER_ROLLS.key(oc="OC-1"),
            cache_keys.INVENTORY.key(),
        )

        result = await invalidation.invalidate_packing_list(cache)

        assert result.removed == 4
        assert len(result.patterns) == 3
        assert await store.keys("cache:*") == [cache_keys.INVENTORY.key()]

    @pytest.mark.asyncio
    async def test_stock_covers_inventory_and_packing_list(self, cache, store):
        await _seed(store, cache_keys.INVENTORY.key(year=2024), cache_keys.ORDER_ROLLS.key(oc="OC-1"), cache_keys.CLIENTES.key())

        result = await invalidation.invalidate_stock(cache)

        assert result.removed == 2
        assert await store.keys("cache:*") == [cache_keys.CLIENTES.key()]

    @pytest.mark.asyncio
    async def test_pending_order_drops_pending_listing_and_order_year(self, cache, store):
        orders = cache_keys.ORDERS
        await _seed(store, cache_keys.PENDING_ORDERS.key(), orders.key(year="2024"), orders.key(), orders.key(year="2023"))

        result = await invalidation.invalidate_pending_order(cache, {"fecha_pedido": "2024-02-01"})

        assert result.removed == 3
        assert await store.keys("cache:*") == [orders.key(year="2023")]

    @pytest.mark.asyncio
    async def test_invalidate_all(self, cache, store):
        await _seed(store, cache_keys.CLIENTES.key(), cache_keys.SOLD_ROLLS.key(days_back=30))
        await store.set("ratelimit:api:1.2.3.4", 1, ttl_seconds=60)

        await invalidation.invalidate_all(cache)

        assert await store.keys("*") == ["ratelimit:api:1.2.3.4"]


class TestInvalidationFailures:
    @pytest.mark.asyncio
    async def test_store_failure_is_reported_not_raised(self):
        cache = CacheService(BrokenCacheStore())

        result = await invalidation.invalidate_cache_for_order_year(cache, {"year": 2024})

        assert result.ok is False
        assert result.removed == 0
        assert result.as_dict()["invalidated"] is False
        assert cache.errors == 2
