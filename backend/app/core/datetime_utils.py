from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings

KYIV = ZoneInfo("Europe/Kyiv")


def company_tz() -> ZoneInfo:
    """Return the configured company timezone (Kyiv unless overridden)."""
    name = (settings.company_timezone or "").strip()
    if not name or name == "Europe/Kyiv":
        return KYIV
    return ZoneInfo(name)


def utcnow() -> datetime:
    """Return current UTC time as naive datetime for DATETIME columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_aware(value: datetime) -> datetime:
    """Treat naive values as UTC and return an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc_naive(value: datetime) -> datetime:
    """Normalize a datetime to UTC and strip tzinfo for DATETIME columns."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, tz: ZoneInfo | None = None) -> datetime:
    return as_utc_aware(value).astimezone(tz or company_tz())


_UK_WEEKDAYS = ("понеділок", "вівторок", "середа", "четвер", "пʼятниця", "субота", "неділя")
_UK_MONTHS_GENITIVE = (
    "січня",
    "лютого",
    "березня",
    "квітня",
    "травня",
    "червня",
    "липня",
    "серпня",
    "вересня",
    "жовтня",
    "листопада",
    "грудня",
)


def format_uk_datetime(value: datetime, tz: ZoneInfo | None = None) -> str:
    """Render e.g. 'четвер, 12 лютого 2026 р. о 18:00' in company time."""
    local = to_local(value, tz)
    weekday = _UK_WEEKDAYS[local.weekday()]
    month = _UK_MONTHS_GENITIVE[local.month - 1]
    return f"{weekday}, {local.day} {month} {local.year} р. о {local:%H:%M}"
