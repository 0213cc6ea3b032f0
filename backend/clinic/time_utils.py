from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clinic_today() -> date:
    """Calendar date at the clinic, per CLINIC_TIMEZONE."""
    tz_name = current_app.config.get("CLINIC_TIMEZONE") or "UTC"
    return datetime.now(ZoneInfo(tz_name)).date()


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a "YYYY-MM-DD" string.

    - None / "" -> None
    - anything else that is not a calendar date raises ValueError
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


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
