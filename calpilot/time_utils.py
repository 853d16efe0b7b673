from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from calpilot.models import NowContext, WeekDay, WeekWindow


WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
END_OF_DAY = time(23, 59, 59, 999000)
MAX_WEEK_OFFSET = 5200


def resolve_zone(timezone_name: str | None) -> tzinfo:
    name = str(timezone_name or "").strip()
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def parse_date_key(value: str | None) -> date | None:
    text = str(value or "").strip()
    if not DATE_KEY_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def to_date_key(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def weekday_name(value: date) -> str:
    return WEEKDAY_NAMES[value.weekday()]


def resolve_now(timezone_name: str, now: datetime | None = None) -> NowContext:
    """Wall-clock "today" in ``timezone_name``, independent of the host zone."""
    zone = resolve_zone(timezone_name)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    local = current.astimezone(zone)
    return NowContext(
        now=current,
        today_date_key=to_date_key(local.date()),
        weekday_name=weekday_name(local.date()),
        timezone=str(timezone_name or "UTC"),
    )


def shift_date_key(date_key: str, delta_days: int) -> str:
    """Calendar arithmetic on a YYYY-MM-DD key; empty string on malformed input."""
    parsed = parse_date_key(date_key)
    if parsed is None:
        return ""
    try:
        return to_date_key(parsed + timedelta(days=int(delta_days)))
    except (OverflowError, TypeError, ValueError):
        return ""


def iso_to_date_key(value: str | None, timezone_name: str) -> str | None:
    """Date key of an ISO instant in the reference zone; date-only values pass through."""
    text = str(value or "").strip()
    if not text:
        return None
    if parse_date_key(text) is not None:
        return text
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return to_date_key(parsed.date())
    return to_date_key(parsed.astimezone(resolve_zone(timezone_name)).date())


def coerce_week_offset(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or abs(number) > MAX_WEEK_OFFSET:
        return 0
    return int(number)


def compute_week_window(
    week_offset: Any,
    week_length_days: int,
    timezone_name: str,
    now: datetime | None = None,
) -> WeekWindow:
    length = week_length_days if week_length_days in (5, 7) else 5
    zone = resolve_zone(timezone_name)
    today = date.fromisoformat(resolve_now(timezone_name, now).today_date_key)
    monday = today - timedelta(days=today.weekday())
    monday = monday + timedelta(weeks=coerce_week_offset(week_offset))

    days = []
    for index in range(length):
        day = monday + timedelta(days=index)
        days.append(
            WeekDay(
                index=index,
                name=WEEKDAY_NAMES[index],
                date_key=to_date_key(day),
                iso=datetime.combine(day, time.min, tzinfo=zone).isoformat(),
            )
        )
    start = datetime.combine(monday, time.min, tzinfo=zone)
    end = datetime.combine(monday + timedelta(days=length - 1), END_OF_DAY, tzinfo=zone)
    return WeekWindow(start=start, end=end, days=tuple(days))
