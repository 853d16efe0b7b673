from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from calpilot.event_normalizer import event_sort_key, format_time_range
from calpilot.intent import RELATIVE_DAY_TOKENS, WEEKDAY_TOKENS, classify_message
from calpilot.models import CalendarEvent, NowContext, WeekDay
from calpilot.time_utils import parse_date_key, shift_date_key, weekday_name


MAX_LOOKUP_LINES = 8
RELATIVE_DAY_OFFSETS = {"today": 0, "tomorrow": 1, "yesterday": -1}

RELATIVE_DAY_PATTERN = re.compile(r"\b(" + "|".join(RELATIVE_DAY_TOKENS) + r")\b", re.IGNORECASE)
WEEKDAY_PATTERN = re.compile(
    r"\b(?:(next|last)\s+)?(" + "|".join(WEEKDAY_TOKENS) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class LookupTarget:
    date_key: str
    day_name: str


def is_schedule_lookup_message(text: str) -> bool:
    return classify_message(text).is_lookup


def _loaded_date_keys(week_days: Iterable[WeekDay | dict[str, Any]] | None) -> set[str]:
    keys = set()
    for day in week_days or []:
        if isinstance(day, WeekDay):
            keys.add(day.date_key)
        elif isinstance(day, dict):
            keys.add(str(day.get("dateKey", "") or day.get("date_key", "")))
    return keys


def _week_day_date_key(week_days: Iterable[WeekDay | dict[str, Any]] | None, name: str) -> str:
    for day in week_days or []:
        if isinstance(day, WeekDay):
            day_name, date_key = day.name, day.date_key
        elif isinstance(day, dict):
            day_name = str(day.get("name", ""))
            date_key = str(day.get("dateKey", "") or day.get("date_key", ""))
        else:
            continue
        if day_name.strip().lower() == name and parse_date_key(date_key) is not None:
            return date_key
    return ""


def _target(date_key: str) -> LookupTarget | None:
    parsed = parse_date_key(date_key)
    if parsed is None:
        return None
    return LookupTarget(date_key=date_key, day_name=weekday_name(parsed))


def resolve_target_date_key(
    message: str,
    week_days: Sequence[WeekDay | dict[str, Any]] | None,
    now_ctx: NowContext,
) -> LookupTarget | None:
    """Resolve the day a lookup message refers to.

    ``today``/``tomorrow``/``yesterday`` resolve directly. A weekday name uses
    the supplied week first and otherwise the next occurrence counted from
    today. ``next <day>`` is forced into the future and ``last <day>`` into
    the past.
    """
    text = message or ""
    relative = RELATIVE_DAY_PATTERN.search(text)
    if relative:
        offset = RELATIVE_DAY_OFFSETS[relative.group(1).lower()]
        return _target(shift_date_key(now_ctx.today_date_key, offset))

    match = WEEKDAY_PATTERN.search(text)
    if not match:
        return None
    today = parse_date_key(now_ctx.today_date_key)
    if today is None:
        return None
    qualifier = (match.group(1) or "").lower()
    name = match.group(2).lower()

    listed = _week_day_date_key(week_days, name)
    if listed:
        if not qualifier:
            return _target(listed)
        delta = (parse_date_key(listed) - today).days
    else:
        delta = (WEEKDAY_TOKENS.index(name) - today.weekday()) % 7

    if qualifier == "next" and delta <= 0:
        delta += 7
    elif qualifier == "last" and delta >= 0:
        delta -= 7
    return _target(shift_date_key(now_ctx.today_date_key, delta))


def _render_line(event: CalendarEvent, timezone_name: str) -> str:
    details = format_time_range(event, timezone_name)
    if event.location.strip():
        details = f"{details}, {event.location.strip()}"
    return f"- {event.summary.strip() or '(No title)'} ({details})"


def build_schedule_lookup_reply(
    message: str,
    events: Sequence[CalendarEvent],
    week_days: Sequence[WeekDay | dict[str, Any]] | None,
    now_ctx: NowContext,
) -> str | None:
    """Answer a "what's on <day>" question from fetched events, or None to defer to the model."""
    if not is_schedule_lookup_message(message):
        return None
    target = resolve_target_date_key(message, week_days, now_ctx)
    # Events outside the fetched week were never loaded.
    if target is None or target.date_key not in _loaded_date_keys(week_days):
        return None

    label = f"{target.day_name} ({target.date_key})"
    matches = [event for event in events if event.date_key == target.date_key and not event.cancelled]
    if not matches:
        return f"You have no events scheduled for {label}."

    matches.sort(key=lambda event: event_sort_key(event, now_ctx.timezone))
    lines = [f"Here is your schedule for {label}:"]
    lines.extend(_render_line(event, now_ctx.timezone) for event in matches[:MAX_LOOKUP_LINES])
    if len(matches) > MAX_LOOKUP_LINES:
        lines.append(f"- +{len(matches) - MAX_LOOKUP_LINES} more")
    return "\n".join(lines)
