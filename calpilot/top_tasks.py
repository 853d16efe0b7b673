from __future__ import annotations

from typing import Sequence

from calpilot.event_normalizer import event_sort_key, format_time_range
from calpilot.models import MAX_TOP_TASKS, CalendarEvent, TopTask
from calpilot.time_utils import parse_date_key, weekday_name


SCOPE_TODAY = "today"
SCOPE_WEEK = "week"


def normalize_scope(value: object) -> str:
    return SCOPE_WEEK if str(value or "").strip().lower() == SCOPE_WEEK else SCOPE_TODAY


def active_events(events: Sequence[CalendarEvent]) -> list[CalendarEvent]:
    return [event for event in events if not event.cancelled]


def scope_events(
    events: Sequence[CalendarEvent],
    scope: str,
    today_date_key: str,
    timezone_name: str,
) -> list[CalendarEvent]:
    ordered = sorted(active_events(events), key=lambda event: event_sort_key(event, timezone_name))
    if scope == SCOPE_TODAY:
        return [event for event in ordered if event.date_key == today_date_key]
    return ordered


def _fallback_reason(event: CalendarEvent, today_date_key: str, timezone_name: str) -> str:
    time_text = format_time_range(event, timezone_name)
    if event.date_key == today_date_key:
        reason = f"Scheduled today ({time_text})"
    else:
        day = parse_date_key(event.date_key)
        day_text = f"{weekday_name(day)} {event.date_key}" if day else "an upcoming day"
        reason = f"Coming up on {day_text} ({time_text})"
    if event.location.strip():
        reason = f"{reason} at {event.location.strip()}"
    return f"{reason}."


def build_fallback_top_tasks(
    events: Sequence[CalendarEvent],
    scope: str,
    today_date_key: str,
    timezone_name: str,
) -> list[TopTask]:
    """Rank the earliest events in scope; the first one is marked high importance."""
    tasks: list[TopTask] = []
    for rank, event in enumerate(scope_events(events, scope, today_date_key, timezone_name)[:MAX_TOP_TASKS]):
        tasks.append(
            TopTask(
                title=event.summary.strip() or "(No title)",
                reason=_fallback_reason(event, today_date_key, timezone_name),
                importance="high" if rank == 0 else "medium",
                source_event_id=event.id,
                target_date=event.date_key or "",
                time=format_time_range(event, timezone_name),
            )
        )
    return tasks


def filter_tasks_to_scope(
    tasks: Sequence[TopTask],
    scope: str,
    today_date_key: str,
    events: Sequence[CalendarEvent],
) -> list[TopTask]:
    if scope != SCOPE_TODAY:
        return list(tasks)
    date_by_event_id = {event.id: event.date_key for event in events if event.id}
    kept: list[TopTask] = []
    for task in tasks:
        if task.target_date:
            if task.target_date == today_date_key:
                kept.append(task)
            continue
        if task.source_event_id and date_by_event_id.get(task.source_event_id) == today_date_key:
            kept.append(task)
    return kept


def task_identity(task: TopTask, index: int) -> str:
    if task.source_event_id:
        return f"id:{task.source_event_id}"
    return f"text:{task.title.lower()}|{task.target_date}|{task.time}|{index}"


def merge_top_tasks(
    primary: Sequence[TopTask],
    fallback: Sequence[TopTask],
    limit: int = MAX_TOP_TASKS,
) -> list[TopTask]:
    """Model-approved tasks first, then fallback tasks, skipping repeated identities."""
    merged: list[TopTask] = []
    seen: set[str] = set()
    for tasks in (primary, fallback):
        for index, task in enumerate(tasks):
            if len(merged) >= limit:
                return merged
            identity = task_identity(task, index)
            if identity in seen:
                continue
            seen.add(identity)
            merged.append(task)
    return merged


def fallback_summary(tasks: Sequence[TopTask], scope: str) -> str:
    window = "today" if scope == SCOPE_TODAY else "this week"
    if not tasks:
        return f"Nothing scheduled {window}."
    if len(tasks) == 1:
        return f"Your top item {window} is {tasks[0].title}."
    return f"Your top {len(tasks)} items {window}, in order of start time."
