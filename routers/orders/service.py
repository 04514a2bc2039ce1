"""Orders service layer."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import HTTPException

from auth import Principal
from config import YEAR_CACHE_TTL
from core.cache_warming import CacheWarmer
from utils.dates import current_year
from utils.logging_helpers import log_error, log_info
from utils.storage import ObjectStorage, ObjectStorageError

from . import repository
from .schemas import OrderCreateRequest, PendingOrderSave

logger = logging.getLogger(__name__)


def listing_ttl(year: Optional[str]) -> int:
    if not year:
        return YEAR_CACHE_TTL["ALL_YEARS"]
    if year == str(current_year()):
        return YEAR_CACHE_TTL["CURRENT_YEAR"]
    return YEAR_CACHE_TTL["HISTORICAL_YEAR"]


def _matches_client(order: dict, client: str) -> bool:
    wanted = client.strip().lower()
    if (order.get("cliente") or "").strip().lower() == wanted:
        return True
    return any((item.get("Cliente") or "").strip().lower() == wanted for item in order.get("items") or [])


async def orders_listing(storage: ObjectStorage, *, year: Optional[str], client: Optional[str]) -> dict:
    if year and (not year.isdigit() or len(year) != 4):
        raise HTTPException(status_code=400, detail="Año inválido")
    try:
        orders = await repository.load_orders(storage, int(year) if year else None)
    except ObjectStorageError as exc:
        log_error(logger, "Orders listing failed", year=year, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener los pedidos")

    if client:
        orders = [order for order in orders if _matches_client(order, client)]
    orders.sort(key=lambda o: str(o.get("fecha_pedido") or o.get("created_at") or ""), reverse=True)
    return {"orders": orders, "total": len(orders), "year": year or None, "client": client or None}


async def create_manual_order(
    storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: OrderCreateRequest
) -> dict:
    year = payload.fecha_pedido.year if payload.fecha_pedido else current_year()
    key = repository.order_key(year, payload.orden_de_compra)
    order = {
        "orden_de_compra": payload.orden_de_compra,
        "cliente": payload.cliente or "",
        "fecha_pedido": payload.fecha_pedido.isoformat() if payload.fecha_pedido else None,
        "notas": payload.notas or "",
        "items": [item.model_dump() for item in payload.items],
        "created_at": datetime.now(timezone.utc).isoformat(),
        "created_by": user.email,
        "status": "pending",
    }
    try:
        if await storage.exists(key):
            raise HTTPException(status_code=409, detail="La orden de compra ya existe")
        await repository.save_order(storage, key, order)
    except ObjectStorageError as exc:
        log_error(logger, "Manual order create failed", user_id=user.user_id, key=key, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al crear el pedido")

    report = await warmer.invalidate_and_warm_orders({"fecha_pedido": order["fecha_pedido"], "year": year})
    log_info(logger, "Manual order created", user_id=user.user_id, key=key)
    return {"success": True, "order": {**order, "fileKey": key, "year": year}, "cache": report.as_dict()}


PENDING_YEARS_BACK = 2
ITEM_KEY_FIELDS = ("pedido_cliente.tipo_tela", "pedido_cliente.color")
UPDATABLE_FIELDS = (
    "proveedor",
    "transportista",
    "factura_transportista",
    "total_transportista_usd",
    "agente_aduanal",
    "m_factura",
    "total_factura",
    "tipo_de_cambio",
    "total_gastos",
    "venta",
    "costo_sin_impuestos",
    "impuestos",
    "costo_tela",
    "incoterm",
    "llega_a_mexico",
    "fecha_pedido",
    "sale_origen",
    "pago_credito",
    "llega_almacen_proveedor",
    "pedimento",
    "factura_proveedor",
    "reporte_inspeccion",
    "pedimento_tránsito",
    "precio_m_fob_usd",
    "total_x_color_fob_usd",
    "fraccion",
)
CRITICAL_FIELDS = (
    "proveedor",
    "incoterm",
    "transportista",
    "agente_aduanal",
    "fecha_pedido",
    "sale_origen",
    "pago_credito",
    "llega_a_mexico",
    "llega_almacen_proveedor",
    "pedimento",
    "factura_proveedor",
    "reporte_inspeccion",
    "pedimento_tránsito",
    "tipo_de_cambio",
    "venta",
)


def _recent_years() -> List[int]:
    year = current_year()
    return [year - offset for offset in range(PENDING_YEARS_BACK + 1)]


def _merge_item(existing: dict, updates: List[dict]) -> Tuple[dict, bool]:
    update = next((u for u in updates if all(existing.get(f) == u.get(f) for f in ITEM_KEY_FIELDS)), None)
    if update is None:
        return existing, False
    merged = dict(existing)
    for field in UPDATABLE_FIELDS:
        # Empty values never erase what is already stored
        if update.get(field):
            merged[field] = update[field]
    if update.get("llega_a_mexico"):
        merged["llega_a_México"] = update["llega_a_mexico"]
    return merged, True


async def save_pending_order(
    storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: PendingOrderSave, *, complete: bool
) -> dict:
    oc = payload.orden_de_compra
    try:
        found = await repository.find_order(storage, oc, _recent_years())
        if found is None:
            raise HTTPException(status_code=404, detail=f'No se encontró el archivo para la orden "{oc}"')
        key, existing = found
        if not isinstance(existing, dict) or not isinstance(existing.get("items"), list):
            raise HTTPException(status_code=422, detail="Formato de archivo no reconocido")

        items, updated = [], 0
        for item in existing["items"]:
            merged, changed = _merge_item(item, payload.orders) if isinstance(item, dict) else (item, False)
            items.append(merged)
            updated += changed
        order = {**existing, "items": items, "updated_at": datetime.now(timezone.utc).isoformat()}
        if complete:
            order["status"] = "completed"
        await repository.save_order(storage, key, order)
    except ObjectStorageError as exc:
        log_error(logger, "Pending order save failed", user_id=user.user_id, oc=oc, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al guardar la orden")

    year = int(key.split("/")[2])
    report = await warmer.invalidate_and_warm_pending_order({**payload.orders[0], "year": year})
    log_info(logger, "Pending order saved", user_id=user.user_id, key=key, items=updated, completed=complete)
    return {
        "success": True,
        "message": "Orden completada exitosamente" if complete else "Datos de la orden guardados",
        "updatedItems": updated,
        "fileKey": key,
        "status": order.get("status"),
        "cache": report.as_dict(),
    }


def _missing_fields(item: dict) -> List[str]:
    return [field for field in CRITICAL_FIELDS if item.get(field) in (None, "")]


async def pending_orders(storage: ObjectStorage) -> dict:
    try:
        orders = []
        for year in _recent_years():
            orders.extend(await repository.load_orders(storage, year))
    except ObjectStorageError as exc:
        log_error(logger, "Pending orders listing failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Error al verificar órdenes pendientes")

    pending = []
    for order in orders:
        if "/status/" in order["fileKey"] or order.get("status") != "pending":
            continue
        items = [item for item in order.get("items") or [] if isinstance(item, dict)]
        missing = sorted({field for item in items for field in _missing_fields(item)})
        pending.append(
            {
                "orden_de_compra": order.get("orden_de_compra") or order["fileKey"].rsplit("/", 1)[-1][:-5],
                "proveedor": next((i.get("proveedor") for i in items if i.get("proveedor")), None),
                "total_items": len(items),
                "items": items,
                "fecha_creacion": order.get("created_at") or order.get("fecha_pedido"),
                "missing_fields": missing,
                "fileKey": order["fileKey"],
            }
        )
    pending.sort(key=lambda o: str(o["fecha_creacion"] or ""), reverse=True)
    return {
        "pendingOrders": pending,
        "totalOrders": len(pending),
        "totalItems": sum(o["total_items"] for o in pending),
    }
