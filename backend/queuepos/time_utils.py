from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def parse_business_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a 'YYYY-MM-DD' business date.

    - None / "" -> None (caller falls back to the shop's current day)
    - anything else that is not a calendar date raises ValueError
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if len(s) != 10:
        raise ValueError(f"invalid business date: {value!r}")
    return date.fromisoformat(s)


def resolve_business_date(timezone_name: str | None, rollover_hour: int | None, at: datetime) -> date:
    """
    Map an instant to the shop-local business day.

    `at` is UTC (naive values are treated as UTC). Instants earlier than
    `rollover_hour` local time still belong to the previous calendar day,
    so a shop that closes at 03:00 keeps its late-night tokens on the
    day they were opened.
    """
    try:
        tz = ZoneInfo(timezone_name or "UTC")
    except ZoneInfoNotFoundError:
        tz = ZoneInfo("UTC")

    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)

    local = at.astimezone(tz)
    hour = max(0, min(23, int(rollover_hour or 0)))
    return (local - timedelta(hours=hour)).date()
