# ws_platform/timeutil.py
# WatchStats - ISO date helpers, time zone resolution and percentage math
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


# ---------- parsing

def parse_instant(v: Any) -> datetime | None:
    """ISO-8601 instant -> aware UTC datetime. Naive values are taken as UTC."""
    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, date):
        dt = datetime(v.year, v.month, v.day)
    elif isinstance(v, str) and v.strip():
        try:
            dt = datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_day(v: Any) -> date | None:
    """ISO calendar date (or the date part of an instant) -> date."""
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if not isinstance(v, str) or len(v.strip()) < 10:
        return None
    try:
        return date.fromisoformat(v.strip()[:10])
    except ValueError:
        return None


def iso_z(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_day(d: date | None) -> str:
    return d.isoformat() if d else ""


# ---------- zones

def zone_from_cfg(cfg: dict[str, Any]) -> tzinfo:
    name = str(((cfg or {}).get("statistics") or {}).get("timezone") or "").strip()
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def local_day(dt: datetime, tz: tzinfo) -> date:
    return dt.astimezone(tz).date()


def week_start(d: date) -> date:
    return d - timedelta(days=d.weekday())


def days_between(a: datetime | date, b: datetime | date) -> int:
    """Whole days from a to b, never negative."""
    if isinstance(a, datetime) and isinstance(b, datetime):
        return max(0, int((b - a).total_seconds() // 86400))
    da = a.date() if isinstance(a, datetime) else a
    db = b.date() if isinstance(b, datetime) else b
    return max(0, (db - da).days)


# ---------- math

def percent(num: float, den: float, digits: int = 2) -> float:
    """num/den as a percentage clamped to [0, 100]; 0 when den is 0."""
    if not den or den <= 0:
        return 0.0
    return round(min(100.0, max(0.0, num / den * 100.0)), digits)


def change_pct(recent: float, prior: float, digits: int = 2) -> float:
    """Signed relative change; +100 when growing from zero."""
    if prior <= 0:
        return 100.0 if recent > 0 else 0.0
    return round((recent - prior) / prior * 100.0, digits)


def mean(values: list[float], digits: int = 2) -> float:
    return round(sum(values) / len(values), digits) if values else 0.0
