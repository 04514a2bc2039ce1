"""Sales and returns service layer."""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import HTTPException

from auth import Principal
from core.cache_warming import CacheWarmer
from utils.dates import now_local
from utils.logging_helpers import log_error, log_info, log_warning
from utils.storage import ObjectStorage, ObjectStorageError

from . import repository
from .schemas import ReturnRequest, ReturnRoll, SaleRequest

logger = logging.getLogger(__name__)

DEFAULT_DAYS_BACK = 30
MONTHS_TO_SEARCH = 3


def _new_sale_id() -> str:
    return f"sale_{uuid.uuid4().hex[:12]}"


async def save_sold_rolls(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: SaleRequest) -> dict:
    now = datetime.now(timezone.utc)
    sale_id = _new_sale_id()
    sold_by = user.email or user.user_id
    rolls = [
        {
            **roll.model_dump(),
            "sold_by": sold_by,
            "sold_date": now.isoformat(),
            "available_for_return": True,
            "sale_id": sale_id,
        }
        for roll in payload.rolls
    ]
    record = {
        "sale_id": sale_id,
        "timestamp": now.isoformat(),
        "sold_by": sold_by,
        "customer_info": payload.customer_info or "",
        "sale_notes": payload.sale_notes or "",
        "total_rolls": len(rolls),
        "total_quantity": sum(r["sold_quantity"] for r in rolls),
        "rolls": rolls,
        "status": "completed",
    }
    key = repository.sale_key(now_local(), sale_id)
    try:
        await repository.save_sale(storage, key, record, sold_by)
    except ObjectStorageError as exc:
        log_error(logger, "Sale save failed", user_id=user.user_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al guardar rollos vendidos")

    report = await warmer.invalidate_and_warm_sold_rolls()
    summary = {
        "totalRolls": len(rolls),
        "totalQuantity": record["total_quantity"],
        "totalValue": round(sum(r["costo"] * r["sold_quantity"] for r in rolls), 2),
        "salesFile": key,
        "orders": sorted({r["oc"] for r in rolls}),
    }
    log_info(logger, "Sale saved", user_id=user.user_id, rolls=len(rolls), key=key)
    return {
        "success": True,
        "message": "Rollos vendidos guardados exitosamente en el historial",
        "summary": summary,
        "salesFile": key,
        "cache": report.as_dict(),
    }


def _parse_days_back(days_back: Optional[str]) -> int:
    if not days_back:
        return DEFAULT_DAYS_BACK
    if not days_back.isdigit() or not 0 < int(days_back) <= 366:
        raise HTTPException(status_code=400, detail="days_back inválido")
    return int(days_back)


def _sold_at(value) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


async def sold_rolls(storage: ObjectStorage, *, days_back: Optional[str]) -> dict:
    days = _parse_days_back(days_back)
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    prefixes = repository.recent_month_prefixes(now_local(), MONTHS_TO_SEARCH)
    try:
        sales = await repository.load_sales(storage, prefixes)
    except ObjectStorageError as exc:
        log_error(logger, "Sold rolls listing failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener rollos vendidos")

    rolls = []
    for sale in sales:
        for roll in sale.get("rolls") or []:
            sold_at = _sold_at(roll.get("sold_date") or sale.get("timestamp"))
            if sold_at is None or sold_at < cutoff or not roll.get("available_for_return", True):
                continue
            rolls.append({**roll, "sale_id": roll.get("sale_id") or sale.get("sale_id"), "salesFile": sale["fileKey"]})
    rolls.sort(key=lambda r: str(r.get("sold_date", "")), reverse=True)
    return {
        "rolls": rolls,
        "total": len(rolls),
        "days_back": days,
        "source": "S3 Historial Venta",
        "searched_in": prefixes,
    }


MANUAL_PREFIX = "MANUAL-"
RETURN_MONTHS_TO_SEARCH = 7


def _same(a, b) -> bool:
    return str(a or "").strip().lower() == str(b or "").strip().lower()


def _is_manual(roll: ReturnRoll) -> bool:
    return str(roll.roll_number).startswith(MANUAL_PREFIX)


def _roll_order(value) -> tuple:
    try:
        return (0, float(value), "")
    except (TypeError, ValueError):
        return (1, 0.0, str(value))


def _inventory_rows(document) -> List[dict]:
    rows = document if isinstance(document, list) else [document]
    return [row for row in rows if isinstance(row, dict)]


def _matches_stock_row(row: dict, roll: ReturnRoll) -> bool:
    return (
        _same(row.get("OC"), roll.oc)
        and _same(row.get("Tela"), roll.fabric_type)
        and _same(row.get("Color"), roll.color)
        and (_same(row.get("Ubicacion"), roll.almacen) or _same(row.get("almacen"), roll.almacen))
    )


def _new_stock_row(roll: ReturnRoll, timestamp: str) -> dict:
    return {
        "OC": roll.oc,
        "Tela": roll.fabric_type,
        "Color": roll.color,
        "Costo": roll.costo,
        "Cantidad": roll.return_quantity,
        "Unidades": roll.units,
        "Total": round(roll.costo * roll.return_quantity, 2),
        "Ubicacion": roll.almacen,
        "Importacion": "DA",
        "FacturaDragonAzteca": "",
        "status": "completed",
        "lastModified": timestamp,
    }


async def _restock_inventory(storage: ObjectStorage, roll: ReturnRoll, now: datetime) -> bool:
    """Add the returned quantity back to this month's inventory.

    An exact row match is updated in place. Otherwise the row is appended to a
    file of the same OC, and manual sales get a new file when there is none.
    """
    timestamp = now.isoformat()
    prefix = repository.inventory_month_prefix(now_local())
    documents = {}
    for key in await repository.list_json(storage, prefix):
        documents[key] = _inventory_rows(await repository.read(storage, key))
    metadata = {"last-updated": timestamp, "operation": "return-roll", "roll-number": str(roll.roll_number)}

    for key, rows in documents.items():
        for row in rows:
            if _matches_stock_row(row, roll):
                cantidad = float(row.get("Cantidad") or 0) + roll.return_quantity
                row["Cantidad"] = cantidad
                row["Total"] = round(float(row.get("Costo") or 0) * cantidad, 2)
                row["lastModified"] = timestamp
                await repository.write(storage, key, rows, **metadata)
                return True

    clean_oc = re.sub(r"[^a-zA-Z0-9]", "_", roll.oc)
    for key, rows in documents.items():
        if clean_oc in key and "inventario_" in key and any(_same(row.get("OC"), roll.oc) for row in rows):
            rows.append(_new_stock_row(roll, timestamp))
            await repository.write(storage, key, rows, **metadata)
            return True

    if not _is_manual(roll):
        return False
    key = f"{prefix}inventario_{clean_oc}_{int(now.timestamp() * 1000)}.json"
    row = {**_new_stock_row(roll, timestamp), "created_from": "manual_sale_return"}
    await repository.write(
        storage,
        key,
        [row],
        **{"created": timestamp, "operation": "return-manual-sale", "roll-number": str(roll.roll_number)},
    )
    return True


async def _restore_packing_list(storage: ObjectStorage, roll: ReturnRoll) -> bool:
    unit_field = "kg" if roll.units.lower() in ("kg", "kgs") else "mts"
    restored = {"roll_number": roll.roll_number, "almacen": roll.almacen, unit_field: roll.return_quantity}
    for key in await repository.packing_list_keys(storage):
        entries = await repository.read(storage, key)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not (
                isinstance(entry, dict)
                and _same(entry.get("fabric_type"), roll.fabric_type)
                and _same(entry.get("color"), roll.color)
                and entry.get("lot") == roll.lot
            ):
                continue
            rolls = [r for r in entry.get("rolls") or [] if str(r.get("roll_number")) != str(roll.roll_number)]
            rolls.append(restored)
            entry["rolls"] = sorted(rolls, key=lambda r: _roll_order(r.get("roll_number")))
            await repository.write(storage, key, entries)
            return True
    return False


async def _mark_rolls_returned(storage: ObjectStorage, returned: List[ReturnRoll], reason: str, now: datetime) -> int:
    prefixes = repository.recent_month_prefixes(now_local(), RETURN_MONTHS_TO_SEARCH)
    marked = 0
    for sale in await repository.load_sales(storage, prefixes):
        changed = False
        for sold in sale.get("rolls") or []:
            if any(
                str(r.roll_number) == str(sold.get("roll_number"))
                and r.oc == sold.get("oc")
                and r.fabric_type == sold.get("fabric_type")
                and r.color == sold.get("color")
                for r in returned
            ):
                sold.update({"available_for_return": False, "returned_date": now.isoformat(), "return_reason": reason})
                changed = True
                marked += 1
        if changed:
            key = sale.pop("fileKey")
            await repository.write(storage, key, sale)
    return marked


async def process_returns(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: ReturnRequest) -> dict:
    now = datetime.now(timezone.utc)
    successful, failed = [], []
    inventory_updates = packing_list_updates = 0

    for roll in payload.rolls:
        manual = _is_manual(roll)
        try:
            inventory_updated = await _restock_inventory(storage, roll, now)
            # Manual sales never came from a packing list
            packing_updated = True if manual else await _restore_packing_list(storage, roll)
        except ObjectStorageError as exc:
            log_warning(logger, "Return of roll failed", user_id=user.user_id, roll=roll.roll_number, error=str(exc))
            failed.append({"roll_number": roll.roll_number, "error": str(exc)})
            continue
        if inventory_updated:
            inventory_updates += 1
        if packing_updated and not manual:
            packing_list_updates += 1
        if inventory_updated or packing_updated:
            successful.append(
                {
                    "roll_number": roll.roll_number,
                    "fabric_type": roll.fabric_type,
                    "color": roll.color,
                    "return_quantity": roll.return_quantity,
                    "units": roll.units,
                    "inventory_updated": inventory_updated,
                    "packing_list_updated": packing_updated,
                    "sale_type": "manual" if manual else "roll",
                }
            )
        else:
            failed.append(
                {
                    "roll_number": roll.roll_number,
                    "error": "No se pudo actualizar el inventario para la venta manual"
                    if manual
                    else "No se pudo actualizar ni inventario ni packing list",
                }
            )

    manual_sales = sum(1 for roll in payload.rolls if _is_manual(roll))
    history_updates = 0
    cache = None
    if successful:
        returned_ids = {str(s["roll_number"]) for s in successful}
        returned = [roll for roll in payload.rolls if str(roll.roll_number) in returned_ids]
        return_id = f"return_{uuid.uuid4().hex[:12]}"
        record = {
            "returnId": return_id,
            "timestamp": now.isoformat(),
            "processedBy": user.email or user.user_id,
            "returnReason": payload.return_reason,
            "notes": payload.notes or "",
            "rolls": [roll.model_dump() for roll in payload.rolls],
            "totalRolls": len(payload.rolls),
            "totalQuantity": sum(roll.return_quantity for roll in payload.rolls),
            "manualSales": manual_sales,
            "rollSales": len(payload.rolls) - manual_sales,
            "status": "completed",
        }
        try:
            history_updates = await _mark_rolls_returned(storage, returned, payload.return_reason, now)
            await repository.write(storage, repository.return_key(now_local(), return_id), record)
        except ObjectStorageError as exc:
            log_error(logger, "Return history update failed", user_id=user.user_id, error=str(exc))
        report = await warmer.invalidate_and_warm_returns()
        cache = report.as_dict()

    log_info(logger, "Returns processed", user_id=user.user_id, successful=len(successful), failed=len(failed))
    return {
        "success": bool(successful),
        "message": f"Devolución procesada: {len(successful)} exitosos, {len(failed)} fallidos",
        "results": {"successful": successful, "failed": failed},
        "summary": {
            "totalRequested": len(payload.rolls),
            "successful": len(successful),
            "failed": len(failed),
            "inventoryUpdates": inventory_updates,
            "packingListUpdates": packing_list_updates,
            "historyUpdates": history_updates,
            "manualSales": manual_sales,
            "rollSales": len(payload.rolls) - manual_sales,
        },
        "cache": cache,
    }
