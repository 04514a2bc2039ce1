"""Packing list service layer."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException

from auth import Principal
from core.cache_warming import CacheWarmer
from utils.dates import now_local
from utils.logging_helpers import log_error, log_info
from utils.storage import ObjectStorage, ObjectStorageError

from . import repository
from .schemas import EditRollsRequest

logger = logging.getLogger(__name__)

NO_OC = "SIN_OC"


def _same(a: Any, b: Any) -> bool:
    return str(a or "").strip().lower() == str(b or "").strip().lower()


def _number_order(value: Any) -> Tuple[int, float, str]:
    try:
        return (0, float(value), "")
    except (TypeError, ValueError):
        return (1, 0.0, str(value))


def _iso(value: Optional[datetime]) -> str:
    return (value or datetime.now(timezone.utc)).isoformat()


async def rolls_for_fabric(storage: ObjectStorage, *, tela: Optional[str], color: Optional[str]) -> dict:
    if not tela or not color:
        raise HTTPException(status_code=400, detail="Tela y color son requeridos")
    try:
        files = await repository.list_roll_files(storage, repository.PACKING_LIST_MARKER)
        if not files:
            raise HTTPException(status_code=404, detail="No se encontraron archivos de packing list")
        loaded = await repository.load_roll_files(storage, files)
    except ObjectStorageError as exc:
        log_error(logger, "Packing list read failed", tela=tela, color=color, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener los datos del packing list")

    consolidated: Dict[Tuple[Any, Any, Any], dict] = {}
    for _, entries in loaded:
        for entry in entries:
            if not (_same(entry.get("fabric_type"), tela) and _same(entry.get("color"), color)):
                continue
            group = (entry.get("fabric_type"), entry.get("color"), entry.get("lot"))
            merged = consolidated.setdefault(group, {**entry, "rolls": {}})
            for roll in entry.get("rolls") or []:
                merged["rolls"][roll.get("roll_number")] = roll

    data = []
    for entry in consolidated.values():
        rolls = sorted(entry["rolls"].values(), key=lambda r: _number_order(r.get("roll_number")))
        data.append({**entry, "rolls": rolls})
    return {"data": data, "total": len(data), "tela": tela, "color": color}


async def available_orders(storage: ObjectStorage) -> dict:
    try:
        files = await repository.list_roll_files(storage, repository.DETAIL_MARKER)
        loaded = await repository.load_roll_files(storage, files)
    except ObjectStorageError as exc:
        log_error(logger, "Available orders read failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Error interno del servidor")

    orders: Dict[str, dict] = {}
    for obj, rolls in loaded:
        for roll in rolls:
            oc = str(roll.get("OC") or "").strip()
            if not oc or oc in orders:
                continue
            orders[oc] = {
                "oc": oc,
                "fileName": obj.key.rsplit("/", 1)[-1],
                "rollCount": sum(1 for r in rolls if str(r.get("OC") or "").strip() == oc),
                "lastModified": _iso(obj.last_modified),
            }
    data = sorted(orders.values(), key=lambda o: o["oc"])
    return {"data": data, "total": len(data)}


async def order_rolls(storage: ObjectStorage, *, oc: Optional[str]) -> dict:
    if not oc:
        raise HTTPException(status_code=400, detail="OC es requerida")
    try:
        files = await repository.list_roll_files(storage, repository.DETAIL_MARKER)
        loaded = await repository.load_roll_files(storage, files)
    except ObjectStorageError as exc:
        log_error(logger, "Order rolls read failed", oc=oc, error=str(exc))
        raise HTTPException(status_code=500, detail="Error interno del servidor")

    for obj, rolls in loaded:
        matching = [roll for roll in rolls if _same(roll.get("OC"), oc)]
        if matching:
            matching.sort(key=lambda r: _number_order(r.get("rollo_id")))
            return {
                "oc": oc,
                "fileName": obj.key.rsplit("/", 1)[-1],
                "lastModified": _iso(obj.last_modified),
                "rolls": matching,
            }
    return {"oc": oc, "fileName": None, "lastModified": None, "rolls": []}


async def edit_rolls(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: EditRollsRequest) -> dict:
    oc = payload.oc.strip()
    for roll in payload.updatedRolls:
        if not _same(roll.OC, oc):
            raise HTTPException(status_code=400, detail=f"Rollo {roll.rollo_id} no pertenece a la OC {oc}")
    updates = {str(roll.rollo_id): roll.model_dump(exclude_none=True) for roll in payload.updatedRolls}

    try:
        files = await repository.list_roll_files(storage, repository.DETAIL_MARKER)
        loaded = await repository.load_roll_files(storage, files)
        found = next(
            ((obj, rolls) for obj, rolls in loaded if any(_same(r.get("OC"), oc) for r in rolls)),
            None,
        )
        if found is None:
            raise HTTPException(status_code=404, detail=f"No se encontró archivo que contenga la OC: {oc}")
        obj, current = found

        now = datetime.now(timezone.utc)
        backup = repository.backup_key(obj.key, now)
        await repository.write(
            storage,
            backup,
            current,
            **{"backup-reason": "pre-edit-backup", "backup-date": now.isoformat(), "backed-up-by": user.email or ""},
        )

        applied = 0
        final = []
        for roll in current:
            update = updates.get(str(roll.get("rollo_id"))) if _same(roll.get("OC"), oc) else None
            if update is not None:
                roll = {**roll, **update, "fecha_ingreso": update.get("fecha_ingreso") or roll.get("fecha_ingreso")}
                applied += 1
            final.append(roll)
        await repository.write(
            storage,
            obj.key,
            final,
            **{
                "last-updated": now.isoformat(),
                "updated-by": user.email or "",
                "operation": "edit-rolls",
                "oc-edited": oc,
                "rolls-updated": str(len(updates)),
            },
        )
    except ObjectStorageError as exc:
        log_error(logger, "Packing list edit failed", user_id=user.user_id, oc=oc, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al actualizar el packing list")

    report = await warmer.invalidate_and_warm_packing_list()
    log_info(logger, "Packing list rolls edited", user_id=user.user_id, oc=oc, rolls=applied, key=obj.key)
    return {
        "success": True,
        "message": "Packing list actualizado correctamente",
        "data": {
            "oc": oc,
            "updatedFile": obj.key,
            "backupFile": backup,
            "rollsUpdated": applied,
            "totalRollsInOC": sum(1 for r in final if _same(r.get("OC"), oc)),
        },
        "cache": {**report.as_dict(), "patterns": report.invalidation.patterns},
    }


def _matches_oc(value: Any, oc: str) -> bool:
    if oc == NO_OC:
        return not str(value or "").strip()
    return _same(value, oc)


async def _delete_pending_inventory(storage: ObjectStorage, oc: str) -> Tuple[int, int]:
    now = now_local()
    deleted_files = deleted_fabrics = 0
    for key in await repository.list_json(storage, repository.inventory_month_prefix(now.year, now.month)):
        document = await repository.read(storage, key)
        if not isinstance(document, dict) or document.get("status") != "pending":
            continue
        fabrics = document.get("fabrics")
        if isinstance(fabrics, list):
            remaining = [f for f in fabrics if not (isinstance(f, dict) and _matches_oc(f.get("oc"), oc))]
            removed = len(fabrics) - len(remaining)
            if not removed:
                continue
            deleted_fabrics += removed
            if remaining:
                await repository.write(storage, key, {**document, "fabrics": remaining, "totalFabrics": len(remaining)})
            else:
                await repository.delete(storage, key)
                deleted_files += 1
        elif _matches_oc(document.get("OC"), oc):
            await repository.delete(storage, key)
            deleted_files += 1
            deleted_fabrics += 1
    return deleted_files, deleted_fabrics


async def _delete_pending_rolls(storage: ObjectStorage, oc: str) -> Tuple[int, int]:
    deleted_files = deleted_rolls = 0
    files = await repository.list_roll_files(storage, repository.DETAIL_MARKER)
    for obj, rolls in await repository.load_roll_files(storage, files):
        remaining = [roll for roll in rolls if not _matches_oc(roll.get("OC"), oc)]
        removed = len(rolls) - len(remaining)
        if not removed:
            continue
        deleted_rolls += removed
        if remaining:
            await repository.write(storage, obj.key, remaining)
        else:
            await repository.delete(storage, obj.key)
            deleted_files += 1
    return deleted_files, deleted_rolls


async def delete_pending(storage: ObjectStorage, warmer: CacheWarmer, user: Principal, oc: str) -> dict:
    oc = oc.strip()
    try:
        deleted_files, deleted_fabrics = await _delete_pending_inventory(storage, oc)
        deleted_roll_files, deleted_rolls = await _delete_pending_rolls(storage, oc)
    except ObjectStorageError as exc:
        log_error(logger, "Pending delete failed", user_id=user.user_id, oc=oc, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al eliminar los datos pendientes")

    total = deleted_fabrics + deleted_rolls
    cache: Optional[dict] = None
    if total:
        report = await warmer.invalidate_and_warm_stock()
        cache = report.as_dict()
    log_info(logger, "Pending data deleted", user_id=user.user_id, oc=oc, items=total)
    return {
        "success": True,
        "message": f"Se eliminaron {total} elementos pendientes de la OC {oc}",
        "deletedFiles": deleted_files,
        "deletedRollFiles": deleted_roll_files,
        "totalDeletedFabrics": deleted_fabrics,
        "totalDeletedRolls": deleted_rolls,
        "totalDeletedItems": total,
        "oc": oc,
        "cache": cache,
    }
