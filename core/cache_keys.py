"""Cache key namespace.

Keys are structured, not hashed, so they stay readable in ``redis-cli``::

    cache:<resource>:<param>=<value>:<param>=<value>

Parameter names are sorted and values are percent-encoded, which keeps ``:``,
``=`` and glob characters out of values. Each resource is described once by a
``CacheResource``; both its lookup keys and its invalidation patterns are
derived from that descriptor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import quote

from config import CACHE_TTL, USER_CACHE_TTL

KEY_ROOT = "cache"
EMPTY = ""

_REGISTRY: Dict[str, "CacheResource"] = {}


def canonical_value(value: Any) -> str:
    """Render one parameter value. ``None`` and ``""`` share the empty sentinel."""
    if value is None:
        return EMPTY
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(sorted(canonical_value(item) for item in value))
    return quote(str(value), safe="")


def generate_cache_key(resource_name: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build the cache key for ``resource_name`` and ``params``.

    Pure function. Insertion order of ``params`` never matters. Names that are
    passed are always present in the key, so resources declare their full
    parameter set (see ``CacheResource.key``) to make "not supplied" and
    "supplied empty" land on the same key.
    """
    base = f"{KEY_ROOT}:{resource_name}"
    if not params:
        return base
    parts = [f"{name}={canonical_value(params[name])}" for name in sorted(params)]
    return base + ":" + ":".join(parts)


@dataclass(frozen=True)
class CacheResource:
    name: str
    ttl: int
    params: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "params", tuple(sorted(self.params)))
        for other in _REGISTRY.values():
            if other.name == self.name:
                continue
            if other.name.startswith(self.name + ":") or self.name.startswith(other.name + ":"):
                raise ValueError(
                    f"Cache resource '{self.name}' overlaps '{other.name}'; "
                    "nested names would share invalidation patterns"
                )
        _REGISTRY[self.name] = self

    def _check_names(self, names: Iterable[str]) -> None:
        unknown = sorted(set(names) - set(self.params))
        if unknown:
            raise ValueError(f"Unknown cache params for {self.name}: {', '.join(unknown)}")

    def key(self, **params: Any) -> str:
        """Key for this resource, with every declared param filled in."""
        self._check_names(params)
        return generate_cache_key(self.name, {p: params.get(p) for p in self.params})

    def pattern(self, **fixed: Any) -> str:
        """Glob matching every key of this resource whose pinned params equal ``fixed``.

        Every key carries every declared param in sorted order, so a positional
        ``param=*`` segment matches any value of an unpinned param.
        """
        self._check_names(fixed)
        base = f"{KEY_ROOT}:{self.name}"
        if not self.params:
            return base
        if not fixed:
            return base + ":*"
        parts = []
        for name in self.params:
            if name in fixed:
                parts.append(f"{name}={canonical_value(fixed[name])}")
            else:
                parts.append(f"{name}=*")
        return base + ":" + ":".join(parts)


def registered_resources() -> Dict[str, CacheResource]:
    return dict(_REGISTRY)


def get_resource(name: str) -> CacheResource:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown cache resource: {name}") from None


FICHAS_TECNICAS = CacheResource("api:s3:fichas-tecnicas", CACHE_TTL["FICHAS_TECNICAS"])
INVENTORY = CacheResource("api:s3:inventario", CACHE_TTL["INVENTORY"], ("year", "month"))
ORDERS = CacheResource("api:s3:pedidos", CACHE_TTL["ORDERS"], ("client", "year"))
PRICE_HISTORY = CacheResource("price-history", CACHE_TTL["PRICE_HISTORY"])
PRICE_HISTORY_FABRIC = CacheResource(
    "price-history-fabric",
    CACHE_TTL["PRICE_HISTORY"],
    ("fabric_id", "date_from", "date_to", "provider"),
)
SOLD_ROLLS = CacheResource("api:returns:sold-rolls", CACHE_TTL["SOLD_ROLLS"], ("days_back",))
CLIENTES = CacheResource("api:s3:clientes", CACHE_TTL["CLIENTES"])
USERS = CacheResource("api:users", USER_CACHE_TTL["COMBINED_DATA"], ("role", "is_active"))
USER_ACTIVITY = CacheResource("api:user-activity", USER_CACHE_TTL["ACTIVITY_DATA"], ("user_id",))
DASHBOARD_USERS = CacheResource("dashboard:users", USER_CACHE_TTL["STATIC_DATA"])
PROVEEDORES = CacheResource("api:s3:proveedores", CACHE_TTL["PROVEEDORES"])
PACKING_LIST_ROLLS = CacheResource("api:s3:get-rolls", CACHE_TTL["ROLLS_DATA"], ("tela", "color"))
AVAILABLE_ORDERS = CacheResource("api:packing-list:available-orders", CACHE_TTL["ROLLS_DATA"])
ORDER_ROLLS = CacheResource("api:packing-list:order-rolls", CACHE_TTL["ROLLS_DATA"], ("oc",))
PENDING_ORDERS = CacheResource("api:orders:pending", CACHE_TTL["PENDING_ORDERS"])
