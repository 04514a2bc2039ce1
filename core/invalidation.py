"""Pattern-based cache invalidation.

Every invalidator derives its glob from the ``CacheResource`` that also builds
the lookup keys, so a pattern always covers every key the resource produced.
Invalidation never raises: a failed delete is logged and reported through
``InvalidationResult.ok``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Mapping, Optional

from core import cache_keys
from core.cache import CacheService
from core.cache_keys import KEY_ROOT, CacheResource
from utils.dates import current_year
from utils.logging_helpers import log_info, log_warning

logger = logging.getLogger(__name__)

ALL_KEYS_PATTERN = f"{KEY_ROOT}:*"


@dataclass
class InvalidationResult:
    removed: int = 0
    ok: bool = True
    patterns: List[str] = field(default_factory=list)

    def merge(self, other: "InvalidationResult") -> "InvalidationResult":
        return InvalidationResult(
            removed=self.removed + other.removed,
            ok=self.ok and other.ok,
            patterns=self.patterns + other.patterns,
        )

    def as_dict(self) -> dict:
        return {"invalidated": self.ok, "removed": self.removed}


async def invalidate_cache_pattern(cache: CacheService, pattern: str) -> InvalidationResult:
    try:
        removed = await cache.store.delete_pattern(pattern)
    except Exception as exc:
        cache.errors += 1
        log_warning(logger, "Cache invalidation failed", pattern=pattern, error=repr(exc))
        return InvalidationResult(removed=0, ok=False, patterns=[pattern])
    if removed:
        log_info(logger, "Cache invalidated", pattern=pattern, removed=removed)
    return InvalidationResult(removed=removed, ok=True, patterns=[pattern])


async def invalidate_patterns(cache: CacheService, *patterns: str) -> InvalidationResult:
    result = InvalidationResult()
    for pattern in dict.fromkeys(patterns):
        result = result.merge(await invalidate_cache_pattern(cache, pattern))
    return result


async def invalidate_resource(cache: CacheService, resource: CacheResource, **fixed: Any) -> InvalidationResult:
    return await invalidate_cache_pattern(cache, resource.pattern(**fixed))


def _year_of(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return value.year
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit() and len(text) == 4:
        return int(text)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).year
    except ValueError:
        pass
    # dd/mm/yyyy style dates from the spreadsheets
    tail = text.replace("-", "/").split("/")[-1]
    if tail.isdigit() and len(tail) == 4:
        return int(tail)
    return None


def order_years(order: Mapping[str, Any]) -> List[int]:
    """Every listing year an order can appear under.

    ``fecha_pedido`` is the business date; ``year`` is the storage folder. They
    normally agree, but both are covered when they do not. With neither, the
    current year in the app timezone is used.
    """
    years = []
    for field_name in ("fecha_pedido", "year"):
        year = _year_of(order.get(field_name))
        if year is not None and year not in years:
            years.append(year)
    return years or [current_year()]


async def invalidate_cache_for_order_year(cache: CacheService, order: Mapping[str, Any]) -> InvalidationResult:
    orders = cache_keys.ORDERS
    patterns = [orders.pattern(year=year) for year in order_years(order)]
    # The all-years listings include every year.
    patterns.append(orders.pattern(year=""))
    return await invalidate_patterns(cache, *patterns)


async def invalidate_user_activity_cache(cache: CacheService, user_id: Optional[str] = None) -> InvalidationResult:
    activity = cache_keys.USER_ACTIVITY
    activity_pattern = activity.pattern(user_id=user_id) if user_id else activity.pattern()
    return await invalidate_patterns(
        cache,
        cache_keys.USERS.pattern(),
        activity_pattern,
        cache_keys.DASHBOARD_USERS.pattern(),
    )


async def invalidate_users(cache: CacheService) -> InvalidationResult:
    return await invalidate_user_activity_cache(cache, None)


async def invalidate_fichas_tecnicas(cache: CacheService) -> InvalidationResult:
    return await invalidate_resource(cache, cache_keys.FICHAS_TECNICAS)


async def invalidate_inventory(cache: CacheService) -> InvalidationResult:
    return await invalidate_resource(cache, cache_keys.INVENTORY)


async def invalidate_price_history(cache: CacheService, fabric_id: Optional[str] = None) -> InvalidationResult:
    fabric = cache_keys.PRICE_HISTORY_FABRIC
    fabric_pattern = fabric.pattern(fabric_id=fabric_id) if fabric_id else fabric.pattern()
    return await invalidate_patterns(cache, cache_keys.PRICE_HISTORY.pattern(), fabric_pattern)


async def invalidate_sold_rolls(cache: CacheService) -> InvalidationResult:
    return await invalidate_resource(cache, cache_keys.SOLD_ROLLS)


async def invalidate_clientes(cache: CacheService) -> InvalidationResult:
    return await invalidate_resource(cache, cache_keys.CLIENTES)


async def invalidate_proveedores(cache: CacheService) -> InvalidationResult:
    return await invalidate_resource(cache, cache_keys.PROVEEDORES)


async def invalidate_packing_list(cache: CacheService) -> InvalidationResult:
    return await invalidate_patterns(
        cache,
        cache_keys.PACKING_LIST_ROLLS.pattern(),
        cache_keys.AVAILABLE_ORDERS.pattern(),
        cache_keys.ORDER_ROLLS.pattern(),
    )


async def invalidate_stock(cache: CacheService) -> InvalidationResult:
    """Inventory listings and packing-list reads; a roll can move between both."""
    inventory = await invalidate_inventory(cache)
    return inventory.merge(await invalidate_packing_list(cache))


async def invalidate_pending_order(cache: CacheService, order: Mapping[str, Any]) -> InvalidationResult:
    pending = await invalidate_resource(cache, cache_keys.PENDING_ORDERS)
    return pending.merge(await invalidate_cache_for_order_year(cache, order))


async def invalidate_all(cache: CacheService) -> InvalidationResult:
    return await invalidate_cache_pattern(cache, ALL_KEYS_PATTERN)
