"""Price history service layer."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException

from auth import Principal
from core.cache import CacheService
from core.cache_keys import PRICE_HISTORY, PRICE_HISTORY_FABRIC
from core.cache_warming import CacheWarmer
from utils.logging_helpers import log_error, log_info
from utils.storage import ObjectStorage, ObjectStorageError

from . import repository
from .schemas import PriceEntryCreate

logger = logging.getLogger(__name__)


def _summary(document: dict) -> dict:
    history = document.get("history") or []
    last = max(history, key=lambda e: str(e.get("date", "")), default=None)
    return {
        "fabricId": document.get("fabricId"),
        "fabricName": document.get("fabricName") or document.get("fabricId"),
        "entries": len(history),
        "lastEntry": last,
        "lastUpdated": document.get("lastUpdated"),
    }


def _in_range(entry: dict, date_from: Optional[str], date_to: Optional[str], provider: Optional[str]) -> bool:
    entry_date = str(entry.get("date", ""))[:10]
    if date_from and entry_date < date_from:
        return False
    if date_to and entry_date > date_to:
        return False
    if provider and (entry.get("provider") or "").lower() != provider.lower():
        return False
    return True


async def list_price_histories(cache: CacheService, storage: ObjectStorage, *, refresh: bool = False) -> dict:
    async def producer():
        documents = await repository.list_histories(storage)
        fabrics = sorted((_summary(doc) for doc in documents), key=lambda s: str(s["fabricName"]).lower())
        return {"fabrics": fabrics, "total": len(fabrics)}

    try:
        result = await cache.get_or_set(PRICE_HISTORY, {}, producer, skip_cache=refresh)
    except ObjectStorageError as exc:
        log_error(logger, "Price history listing failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener el historial de precios")
    return {**result.value, "cached": result.hit}


async def fabric_price_history(
    cache: CacheService,
    storage: ObjectStorage,
    fabric_id: str,
    *,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    provider: Optional[str] = None,
    refresh: bool = False,
) -> dict:
    async def producer():
        document = await repository.get_history(storage, fabric_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Historial de precios no encontrado")
        history = [e for e in document.get("history") or [] if _in_range(e, date_from, date_to, provider)]
        history.sort(key=lambda e: str(e.get("date", "")))
        return {
            "fabricId": fabric_id,
            "fabricName": document.get("fabricName") or fabric_id,
            "history": history,
            "providers": sorted({e.get("provider") for e in history if e.get("provider")}),
            "lastUpdated": document.get("lastUpdated"),
        }

    params = {"fabric_id": fabric_id, "date_from": date_from, "date_to": date_to, "provider": provider}
    try:
        result = await cache.get_or_set(PRICE_HISTORY_FABRIC, params, producer, skip_cache=refresh)
    except ObjectStorageError as exc:
        log_error(logger, "Price history read failed", fabric_id=fabric_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al obtener el historial de precios")
    return {**result.value, "cached": result.hit}


async def add_price_entry(
    storage: ObjectStorage, warmer: CacheWarmer, user: Principal, payload: PriceEntryCreate
) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    entry = {
        "provider": payload.provider,
        "date": payload.date.isoformat(),
        "quantity": payload.quantity,
        "unit": payload.unit,
    }
    try:
        document = await repository.get_history(storage, payload.fabric_id) or {
            "fabricId": payload.fabric_id,
            "fabricName": payload.fabric_name or payload.fabric_id,
            "history": [],
        }
        document["history"] = sorted(document.get("history", []) + [entry], key=lambda e: str(e.get("date", "")))
        document["lastUpdated"] = now
        if payload.fabric_name:
            document["fabricName"] = payload.fabric_name
        await repository.save_history(storage, payload.fabric_id, document)
    except ObjectStorageError as exc:
        log_error(logger, "Price entry save failed", user_id=user.user_id, fabric_id=payload.fabric_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Error al guardar el precio")

    report = await warmer.invalidate_and_warm_price_history(payload.fabric_id)
    log_info(logger, "Price entry added", user_id=user.user_id, fabric_id=payload.fabric_id)
    return {"success": True, "fabricId": payload.fabric_id, "entry": entry, "cache": report.as_dict()}
