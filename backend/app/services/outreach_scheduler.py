"""Humanised send times for outreach messages.

All bucketing happens in the company's civil timezone:

* 07:00-14:59 local: reply 3 to 4 hours later (uniform, millisecond resolution)
* 00:00-06:59 local: the same local day between 10:00 and 10:59
* 15:00-23:59 local: the next local day between 10:00 and 10:59
"""

from __future__ import annotations

import json
import random
from datetime import datetime, time, timedelta, timezone
from typing import Any, Literal, Protocol
from zoneinfo import ZoneInfo

from app.core.datetime_utils import as_utc_aware, company_tz

DeliveryMethod = Literal["email", "telegram"]

DAYTIME_START_HOUR = 7
DAYTIME_END_HOUR = 15
MORNING_SEND_HOUR = 10
MIN_DELAY_MS = 3 * 60 * 60 * 1000
MAX_DELAY_MS = 4 * 60 * 60 * 1000


class RandomSource(Protocol):
    def random(self) -> float: ...


def _random_int(rng: RandomSource, low: int, high: int) -> int:
    """Uniform integer in [low, high]."""
    return low + int(rng.random() * (high - low + 1))


def _daytime_delay_ms(rng: RandomSource) -> int:
    # Strictly inside (3h, 4h) so the result never lands on a window edge.
    span = MAX_DELAY_MS - MIN_DELAY_MS - 1
    return MIN_DELAY_MS + 1 + int(rng.random() * span)


def _local_morning(day: datetime, minute: int, tz: ZoneInfo) -> datetime:
    return datetime.combine(day.date(), time(MORNING_SEND_HOUR, minute), tzinfo=tz)


def calculate_scheduled_time(
    submission: datetime,
    rng: RandomSource | None = None,
    tz: ZoneInfo | None = None,
) -> datetime:
    """Map a submission instant to a humanised send instant (aware UTC)."""
    rng = rng or random.Random()
    tz = tz or company_tz()
    submitted_utc = as_utc_aware(submission)
    local = submitted_utc.astimezone(tz)

    if DAYTIME_START_HOUR <= local.hour < DAYTIME_END_HOUR:
        return submitted_utc + timedelta(milliseconds=_daytime_delay_ms(rng))

    minute = _random_int(rng, 0, 59)
    if local.hour < DAYTIME_START_HOUR:
        target = _local_morning(local, minute, tz)
    else:
        target = _local_morning(local + timedelta(days=1), minute, tz)
    return target.astimezone(timezone.utc)


def _coerce_methods(preferred_methods: Any) -> list[str]:
    if preferred_methods is None:
        return []
    if isinstance(preferred_methods, str):
        try:
            parsed = json.loads(preferred_methods)
        except ValueError:
            return []
        preferred_methods = parsed
    if not isinstance(preferred_methods, (list, tuple, set)):
        return []
    return [str(item).strip().lower() for item in preferred_methods if item is not None]


def determine_delivery_method(preferred_methods: Any, telegram_handle: str | None) -> DeliveryMethod:
    methods = _coerce_methods(preferred_methods)
    handle = (telegram_handle or "").strip()
    if "telegram" in methods and handle:
        return "telegram"
    return "email"


def format_scheduled_time_relative(scheduled_for: datetime, now: datetime | None = None) -> str:
    """Short Ukrainian description of when a message goes out, e.g. 'через 3 год 20 хв'."""
    current = as_utc_aware(now) if now else datetime.now(timezone.utc)
    delta = as_utc_aware(scheduled_for) - current
    total_minutes = int(delta.total_seconds() // 60)
    if total_minutes <= 0:
        return "зараз"
    hours, minutes = divmod(total_minutes, 60)
    if hours >= 24:
        days = hours // 24
        return f"через {days} дн"
    if hours:
        return f"через {hours} год {minutes} хв" if minutes else f"через {hours} год"
    return f"через {minutes} хв"


def is_scheduled_time_in_past(scheduled_for: datetime, now: datetime | None = None) -> bool:
    current = as_utc_aware(now) if now else datetime.now(timezone.utc)
    return as_utc_aware(scheduled_for) <= current
