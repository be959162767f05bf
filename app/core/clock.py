from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import DEFAULT_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite devolve datetimes sem tzinfo; tratamos como UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def merchant_zone(tz_name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def to_merchant_local(now: datetime, tz_name: str | None) -> datetime:
    return as_utc(now).astimezone(merchant_zone(tz_name))


def day_of_week(local_now: datetime) -> int:
    """0 = domingo ... 6 = sábado."""
    return (local_now.weekday() + 1) % 7


def parse_hhmm(value: str | None) -> int | None:
    """'HH:MM' -> minutos desde meia-noite, ou None se inválido."""
    if not value or not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        return None
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def minutes_of_day(local_now: datetime) -> int:
    return local_now.hour * 60 + local_now.minute
