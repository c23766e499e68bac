from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def store_timezone() -> ZoneInfo:
    return ZoneInfo(current_app.config.get("STORE_TIMEZONE") or "UTC")


def store_today() -> date:
    """Calendar date at the store, which scopes the product code sequence."""
    return datetime.now(store_timezone()).date()


def to_store_time(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert a stored datetime to the store's local time.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(store_timezone())


def store_midnight_utc(day: date) -> datetime:
    """Start of a store-local calendar day, as a UTC-naive datetime comparable with stored columns."""
    local = datetime.combine(day, time.min, tzinfo=store_timezone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


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
