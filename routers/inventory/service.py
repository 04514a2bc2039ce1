"""Inventory service layer."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from fastapi import HTTPException

from auth import Principal
from core.cache_warming import CacheWarmer
from utils.dates import month_number, now_local
from utils.logging_helpers import log_error, log_info
from utils.storage import ObjectNotFound, ObjectStorage, ObjectStorageError

from . import repository
from .schemas import InventoryRowChanges, InventoryRowCreate

logger = logging.getLogger(__name__)

COST_FIELDS = ("Costo", "costo", "COSTO")
QUANTITY_FIELDS = ("Cantidad", "cantidad", "CANTIDAD")
TEXT_FIELDS = ("OC", "Tela", "Color", "Ubicacion")
DEFAULT_UNITS = "MTS"


def parse_number(value: Any) -> float:
    """Spreadsheet numbers: ``$1,234.5``-style prefixes, decimal commas, stray spaces."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace("$", "").replace(",", ".").replace(" ", "")
    try:
        return float(text)
    except ValueError:
        return 0.0


def _first_present(row: dict, fields: Tuple[str, ...]) -> Any:
    for field in fields:
        if row.get(field) not in (None, ""):
            return row[field]
    return None


def normalize_row(row: dict) -> dict:
    costo = parse_number(_first_present(row, COST_FIELDS))
    cantidad = parse_number(_first_present(row, QUANTITY_FIELDS))
    normalized = {k: v for k, v in row.items() if k not in COST_FIELDS + QUANTITY_FIELDS}
    normalized.update(
        {
            "Costo": costo,
            "Cantidad": cantidad,
            "Total": round(costo * cantidad, 2),
            "Unidades": row.get("Unidades") or DEFAULT_UNITS,
            "isPending": row.get("status") == "pending",
        }
    )
    for field in TEXT_FIELDS:
        value = row.get(field)
        normalized[field] = "" if value is None else str(value)
    return normalized


def parse_period(year: Optional[str], month: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    parsed_year = None
    if year:
        if not year.isdigit() or len(year) != 4:
            raise HTTPException(status_code=400, detail="Año inválido")
        parsed_year = int(year)
    parsed_month = None
    if month:
        if parsed_year is None:
            raise HTTPException(status_code=400, detail="El mes requiere un año")
        parsed_month = month_number(month)
        if parsed_month is None:
            raise HTTPException(status_code=400, detail="Mes inválido")
    return parsed_year, parsed_month


async def inventory_listing(storage: ObjectStorage, *, year: Optional[str], month: Optional[str]) -> dict:
    parsed_year, parsed_month = parse_period(year, month)
    prefix = repository.folder_prefix(parsed_year, parsed_month)
    try:
        rows = [normalize_row(row) for row in await repository.load_rows(storage, prefix)]
    except ObjectStorageError as exc:
        log_error(logger, "Inventory listing failed", prefix=prefix, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener el inventario")

    return {
        "data": rows,
        "year": parsed_year,
        "month": parsed_month,
        "total_items": len(rows),
        "total_quantity": round(sum(r["Cantidad"] for r in rows), 2),
        "total_cost": round(sum(r["Total"] for r in rows), 2),
        "pending_count": sum(1 for r in rows if r["isPending"]),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


async def create_row(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: InventoryRowCreate) -> dict:
    now = now_local()
    prefix = repository.folder_prefix(now.year, now.month)
    timestamp = datetime.now(timezone.utc).isoformat()
    item = {
        **payload.model_dump(),
        "Total": round(payload.Cantidad * payload.Costo, 2),
        "status": "success",
        "createdAt": timestamp,
        "createdBy": user.email,
        "lastModified": timestamp,
    }
    try:
        key = await repository.next_row_key(storage, prefix)
        await repository.write_document(storage, key, [item])
    except ObjectStorageError as exc:
        log_error(logger, "Inventory row create failed", user_id=user.user_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al crear la fila de inventario")

    report = await warmer.invalidate_and_warm_inventory()
    log_info(logger, "Inventory row created", user_id=user.user_id, key=key)
    return {"success": True, "data": {"fileKey": key, "item": item}, "cache": report.as_dict()}


async def update_row(
    storage: ObjectStorage,
    warmer: CacheWarmer,
    user: Principal,
    *,
    file_key: str,
    row_index: int,
    changes: InventoryRowChanges,
) -> dict:
    if not repository.is_inventory_document(file_key):
        raise HTTPException(status_code=400, detail="Archivo de inventario inválido")
    updates = changes.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")

    try:
        rows = await repository.read_document(storage, file_key)
        if row_index >= len(rows):
            raise HTTPException(status_code=404, detail="Fila no encontrada")
        row = {**rows[row_index], **updates}
        costo = parse_number(_first_present(row, COST_FIELDS))
        cantidad = parse_number(_first_present(row, QUANTITY_FIELDS))
        row["Total"] = round(costo * cantidad, 2)
        row["lastModified"] = datetime.now(timezone.utc).isoformat()
        row["lastModifiedBy"] = user.email
        rows[row_index] = row
        await repository.write_document(storage, file_key, rows)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="Archivo de inventario no encontrado")
    except ObjectStorageError as exc:
        log_error(logger, "Inventory row update failed", user_id=user.user_id, key=file_key, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al actualizar el inventario")

    report = await warmer.invalidate_and_warm_inventory()
    log_info(logger, "Inventory row updated", user_id=user.user_id, key=file_key, row=row_index)
    return {"success": True, "data": row, "cache": report.as_dict()}
