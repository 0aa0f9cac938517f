from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any


def now_utc_iso() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()


def to_float(v: Any) -> float | None:
    if v is None:
        return None
    if isinstance(v, (int, float, Decimal)):
        return float(v)
    s = str(v).strip()
    if s == "":
        return None
    try:
        return float(s.replace(",", ""))
    except ValueError:
        return None


def to_day_iso(v: Any) -> str:
    """Warehouse DATE/TIMESTAMP values (or their string forms) as YYYY-MM-DD."""
    if isinstance(v, datetime):
        return v.date().isoformat()
    if isinstance(v, date):
        return v.isoformat()
    return str(v or "").strip()[:10]
