from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Sequence

from calpilot.models import (
    CHANGE_ACTIONS,
    MAX_PROPOSED_CHANGES,
    MAX_SUGGESTED_EVENTS,
    MAX_TOP_TASKS,
    CalendarEvent,
    PlannerResult,
    ProposedChange,
    SuggestedEvent,
    TopTask,
)
from calpilot.time_utils import DATE_KEY_PATTERN


PLANNER_SYSTEM_PROMPT = """You are an AI scheduling assistant.
Analyze existing events and suggest realistic improvements.
Respect existing commitments and avoid overlaps.
Return JSON only with this schema:
{
  "reply": "string",
  "suggestedEvents": [
    {"title":"string","start":"ISO-8601","end":"ISO-8601","description":"string","location":"string","reason":"string"}
  ],
  "proposedChanges": [
    {"action":"update|delete","eventId":"string","title":"string","start":"ISO-8601","end":"ISO-8601","description":"string","location":"string","reason":"string"}
  ]
}
For proposedChanges action=delete, include eventId and reason only.
When the user asks to move or edit an existing event, use proposedChanges, never suggestedEvents.
Keep suggestedEvents max 4 and proposedChanges max 3.
"""

TOP_TASKS_SYSTEM_PROMPT = """You are an AI scheduling assistant ranking what matters most.
Pick at most 3 of the supplied events the user should focus on within the given scope.
Return JSON only with this schema:
{
  "summary": "string",
  "topTasks": [
    {"title":"string","reason":"string","importance":"high|medium|low","sourceEventId":"string","targetDate":"YYYY-MM-DD","time":"string"}
  ]
}
Only use events inside the scope window. Copy sourceEventId from the event id.
"""

IMPORTANCE_SYNONYMS = {
    "high": "high",
    "critical": "high",
    "urgent": "high",
    "p1": "high",
    "low": "low",
    "minor": "low",
    "p3": "low",
}

STAGE_STRICT = "strict"
STAGE_FALLBACK = "fallback"
STAGE_UNPARSED = "unparsed"


@dataclass(frozen=True)
class ParsedModelOutput:
    payload: dict[str, Any] | None
    text: str
    stage: str

    @property
    def parsed(self) -> bool:
        return self.payload is not None


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        result = json.loads(text)
    except ValueError:
        return None
    return result if isinstance(result, dict) else None


def parse_model_json(text: str | None) -> ParsedModelOutput:
    """Strict parse, then the outermost ``{...}`` substring, else an unparsed marker."""
    raw = str(text or "").strip()
    if not raw:
        return ParsedModelOutput(payload=None, text="", stage=STAGE_UNPARSED)
    payload = _loads_object(raw)
    if payload is not None:
        return ParsedModelOutput(payload=payload, text=raw, stage=STAGE_STRICT)
    first = raw.find("{")
    last = raw.rfind("}")
    if first >= 0 and last > first:
        payload = _loads_object(raw[first : last + 1])
        if payload is not None:
            return ParsedModelOutput(payload=payload, text=raw, stage=STAGE_FALLBACK)
    return ParsedModelOutput(payload=None, text=raw, stage=STAGE_UNPARSED)


def _field(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if value is None or value is False:
        return ""
    return str(value).strip()


def normalize_planner_response(raw: Any) -> PlannerResult:
    result = PlannerResult()
    if not isinstance(raw, dict):
        return result

    reply = raw.get("reply")
    if isinstance(reply, str):
        result.reply = reply.strip()

    suggested = raw.get("suggestedEvents")
    if isinstance(suggested, list):
        for item in suggested:
            if not isinstance(item, dict):
                continue
            event = SuggestedEvent(
                title=_field(item, "title"),
                start=_field(item, "start"),
                end=_field(item, "end"),
                description=_field(item, "description"),
                location=_field(item, "location"),
                reason=_field(item, "reason"),
            )
            if not (event.title and event.start and event.end):
                continue
            result.suggested_events.append(event)
            if len(result.suggested_events) >= MAX_SUGGESTED_EVENTS:
                break

    changes = raw.get("proposedChanges")
    if isinstance(changes, list):
        for item in changes:
            if not isinstance(item, dict):
                continue
            change = ProposedChange(
                action=_field(item, "action").lower(),
                event_id=_field(item, "eventId"),
                title=_field(item, "title"),
                start=_field(item, "start"),
                end=_field(item, "end"),
                description=_field(item, "description"),
                location=_field(item, "location"),
                reason=_field(item, "reason"),
            )
            if not change.event_id or change.action not in CHANGE_ACTIONS:
                continue
            result.proposed_changes.append(change)
            if len(result.proposed_changes) >= MAX_PROPOSED_CHANGES:
                break

    return result


def normalize_importance(value: Any) -> str:
    return IMPORTANCE_SYNONYMS.get(str(value or "").strip().lower(), "medium")


def normalize_top_tasks_response(raw: Any) -> tuple[str, list[TopTask]]:
    if not isinstance(raw, dict):
        return "", []
    summary = raw.get("summary")
    summary_text = summary.strip() if isinstance(summary, str) else ""

    tasks: list[TopTask] = []
    items = raw.get("topTasks")
    if isinstance(items, list):
        for item in items:
            if not isinstance(item, dict):
                continue
            title = _field(item, "title")
            if not title:
                continue
            target_date = _field(item, "targetDate")
            tasks.append(
                TopTask(
                    title=title,
                    reason=_field(item, "reason"),
                    importance=normalize_importance(item.get("importance")),
                    source_event_id=_field(item, "sourceEventId"),
                    target_date=target_date if DATE_KEY_PATTERN.match(target_date) else "",
                    time=_field(item, "time"),
                )
            )
            if len(tasks) >= MAX_TOP_TASKS:
                break
    return summary_text, tasks


def build_planner_payload(
    *,
    message: str,
    events: Sequence[CalendarEvent],
    week: dict[str, Any],
    timezone: str,
    today: str,
) -> dict[str, Any]:
    return {
        "timezone": timezone,
        "today": today,
        "week": week,
        "userMessage": message,
        "events": [event.to_dict() for event in events],
    }


def build_top_tasks_payload(
    *,
    events: Sequence[CalendarEvent],
    scope: str,
    window: dict[str, Any],
    timezone: str,
    today: str,
) -> dict[str, Any]:
    return {
        "timezone": timezone,
        "today": today,
        "scope": scope,
        "window": window,
        "events": [
            {
                "id": event.id,
                "summary": event.summary,
                "start": event.start,
                "end": event.end,
                "allDay": event.all_day,
                "dateKey": event.date_key,
                "location": event.location,
            }
            for event in events
        ],
    }


def dump_payload(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)
