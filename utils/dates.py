"""Date helpers pinned to the business timezone."""

from datetime import datetime
from typing import Optional

import pytz

from config import APP_TIMEZONE

MONTH_NAMES = [
    "Enero",
    "Febrero",
    "Marzo",
    "Abril",
    "Mayo",
    "Junio",
    "Julio",
    "Agosto",
    "Septiembre",
    "Octubre",
    "Noviembre",
    "Diciembre",
]


def now_local() -> datetime:
    return datetime.now(pytz.timezone(APP_TIMEZONE))


def current_year() -> int:
    return now_local().year


def month_name(month: int) -> str:
    return MONTH_NAMES[month - 1]


def month_number(name: str) -> Optional[int]:
    """1-based month for a Spanish month name (case-insensitive) or a numeric string."""
    text = (name or "").strip()
    if text.isdigit():
        number = int(text)
        return number if 1 <= number <= 12 else None
    lowered = text.lower()
    for index, candidate in enumerate(MONTH_NAMES, start=1):
        if candidate.lower() == lowered:
            return index
    return None
