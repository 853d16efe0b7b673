from __future__ import annotations

import re
from datetime import datetime, time
from typing import Any

from calpilot.models import MAX_ATTACHMENTS, Attachment, CalendarEvent, parse_iso_datetime
from calpilot.time_utils import iso_to_date_key, parse_date_key, resolve_zone


CONFERENCE_URL_PATTERN = re.compile(
    r"https://(?:meet\.google\.com|[\w.-]*zoom\.us|teams\.microsoft\.com|[\w.-]*webex\.com)/[^\s<>\"')]+",
    re.IGNORECASE,
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _time_part(item: dict[str, Any], key: str) -> dict[str, Any]:
    value = item.get(key)
    return value if isinstance(value, dict) else {}


def _normalize_attachments(raw: Any) -> tuple[Attachment, ...]:
    if not isinstance(raw, list):
        return ()
    attachments: list[Attachment] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        attachment = Attachment(
            title=_text(entry.get("title")).strip(),
            file_url=_text(entry.get("fileUrl")).strip(),
            mime_type=_text(entry.get("mimeType")).strip(),
            icon_link=_text(entry.get("iconLink")).strip(),
        )
        if not attachment.title and not attachment.file_url:
            continue
        attachments.append(attachment)
        if len(attachments) >= MAX_ATTACHMENTS:
            break
    return tuple(attachments)


def _extract_conference_link(item: dict[str, Any]) -> str:
    hangout = _text(item.get("hangoutLink")).strip()
    if hangout:
        return hangout

    conference = item.get("conferenceData")
    if isinstance(conference, dict):
        entry_points = conference.get("entryPoints")
        if isinstance(entry_points, list):
            uris = [
                (_text(point.get("entryPointType")).strip(), _text(point.get("uri")).strip())
                for point in entry_points
                if isinstance(point, dict)
            ]
            for kind, uri in uris:
                if kind == "video" and uri:
                    return uri
            for _kind, uri in uris:
                if uri:
                    return uri

    for field in ("location", "description"):
        match = CONFERENCE_URL_PATTERN.search(_text(item.get(field)))
        if match:
            return match.group(0)
    return ""


def _all_day_duration(start_raw: str | None, end_raw: str | None) -> int | None:
    start = parse_date_key(start_raw)
    end = parse_date_key(end_raw)
    if start is None or end is None or end <= start:
        return None
    return (end - start).days


def _timed_duration(start_raw: str | None, end_raw: str | None) -> int | None:
    start = parse_iso_datetime(start_raw)
    end = parse_iso_datetime(end_raw)
    if start is None or end is None or end <= start:
        return None
    return int(round((end - start).total_seconds() / 60))


def normalize_event(item: dict[str, Any], default_timezone: str) -> CalendarEvent:
    """Map one Google Calendar event resource onto a CalendarEvent.

    Missing or malformed fields resolve to defaults; an unparseable or
    inverted range leaves both duration fields as None.
    """
    item = item if isinstance(item, dict) else {}
    start_part = _time_part(item, "start")
    end_part = _time_part(item, "end")

    start_raw = _text(start_part.get("dateTime") or start_part.get("date")).strip() or None
    end_raw = _text(end_part.get("dateTime") or end_part.get("date")).strip() or None
    all_day = bool(start_part.get("date") and not start_part.get("dateTime"))
    event_timezone = _text(start_part.get("timeZone")).strip() or default_timezone

    if all_day:
        date_key = start_raw if parse_date_key(start_raw) is not None else None
        duration_minutes = None
        duration_days = _all_day_duration(start_raw, end_raw)
    else:
        date_key = iso_to_date_key(start_raw, default_timezone) if start_raw else None
        duration_minutes = _timed_duration(start_raw, end_raw)
        duration_days = None

    return CalendarEvent(
        id=_text(item.get("id")),
        summary=_text(item.get("summary")),
        description=_text(item.get("description")),
        location=_text(item.get("location")),
        start=start_raw,
        end=end_raw,
        all_day=all_day,
        date_key=date_key,
        duration_minutes=duration_minutes,
        duration_days=duration_days,
        timezone=event_timezone,
        attachments=_normalize_attachments(item.get("attachments")),
        conference_link=_extract_conference_link(item),
        status=_text(item.get("status")),
        html_link=_text(item.get("htmlLink")),
    )


def normalize_events(items: list[dict[str, Any]] | None, default_timezone: str) -> list[CalendarEvent]:
    return [normalize_event(item, default_timezone) for item in items or []]


def event_start_instant(event: CalendarEvent, timezone_name: str) -> datetime | None:
    if event.all_day:
        day = parse_date_key(event.start)
        if day is None:
            return None
        return datetime.combine(day, time.min, tzinfo=resolve_zone(timezone_name))
    return parse_iso_datetime(event.start)


def event_sort_key(event: CalendarEvent, timezone_name: str) -> tuple[int, float]:
    """Ascending by start; events with an unparseable start sort last."""
    start = event_start_instant(event, timezone_name)
    if start is None:
        return (1, 0.0)
    return (0, start.timestamp())


def format_time_range(event: CalendarEvent, timezone_name: str) -> str:
    if event.all_day:
        return "All day"
    zone = resolve_zone(timezone_name)
    start = parse_iso_datetime(event.start)
    end = parse_iso_datetime(event.end)
    if start is None:
        return "Time TBD"
    start_text = start.astimezone(zone).strftime("%H:%M")
    if end is None or end <= start:
        return start_text
    return f"{start_text}-{end.astimezone(zone).strftime('%H:%M')}"
