from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Sequence

from calpilot.ai_client import AIClientError, OpenAICompatibleClient
from calpilot.date_hints import inject_relative_date_hints
from calpilot.intent import is_smalltalk_message
from calpilot.models import CalendarEvent, NowContext, PlannerResult, TopTasksResult, WeekWindow
from calpilot.planner import (
    PLANNER_SYSTEM_PROMPT,
    TOP_TASKS_SYSTEM_PROMPT,
    build_planner_payload,
    build_top_tasks_payload,
    dump_payload,
    normalize_planner_response,
    normalize_top_tasks_response,
    parse_model_json,
)
from calpilot.reconciler import reconcile_intent
from calpilot.schedule_lookup import build_schedule_lookup_reply
from calpilot.time_utils import resolve_now
from calpilot.top_tasks import (
    SCOPE_TODAY,
    active_events,
    build_fallback_top_tasks,
    fallback_summary,
    filter_tasks_to_scope,
    merge_top_tasks,
    normalize_scope,
    scope_events,
)


logger = logging.getLogger(__name__)

MISSING_KEY_REPLY = (
    "OPENAI_API_KEY is not configured. Set ai.api_key in config.yaml or the "
    "OPENAI_API_KEY environment variable to enable AI recommendations."
)
EMPTY_MODEL_REPLY = "AI returned an empty response."
MODEL_ERROR_REPLY = "I couldn't reach the AI planner just now. Please try again in a moment."
SMALLTALK_REPLY = (
    "Hi! I can look up your schedule, suggest new events, or help you move things around. "
    "What would you like to do?"
)
SPECIFICS_REPLY = (
    "Tell me a bit more about what you need, for example "
    "\"What's on my schedule tomorrow?\" or \"Schedule 3 workouts this week.\""
)
EMPTY_WEEK_SUMMARY = "No events this week."

LOW_INFORMATION_PHRASES = (
    "how can i help",
    "how can i assist",
    "how may i help",
    "what would you like",
    "let me know how i can help",
    "let me know what you",
    "i'm here to help",
    "i am here to help",
    "please provide more details",
    "could you provide more details",
    "could you clarify",
)


def looks_low_information(reply: str) -> bool:
    text = " ".join((reply or "").lower().replace("’", "'").split())
    return any(phrase in text for phrase in LOW_INFORMATION_PHRASES)


def _week_payload(week: WeekWindow | dict[str, Any] | None) -> dict[str, Any]:
    if isinstance(week, WeekWindow):
        return week.to_dict()
    return dict(week or {})


def _week_days(week: WeekWindow | dict[str, Any] | None) -> Sequence[Any]:
    if isinstance(week, WeekWindow):
        return week.days
    if isinstance(week, dict) and isinstance(week.get("days"), list):
        return week["days"]
    return []


class PlannerOrchestrator:
    """Runs the chat and top-tasks pipelines around one model call each."""

    def __init__(
        self,
        ai_client: OpenAICompatibleClient,
        timezone: str,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.ai_client = ai_client
        self.timezone = timezone
        self._now = now

    def _now_context(self) -> NowContext:
        return resolve_now(self.timezone, self._now() if self._now else None)

    def plan_chat(
        self,
        message: str,
        events: Sequence[CalendarEvent],
        week: WeekWindow | dict[str, Any] | None,
    ) -> PlannerResult:
        now_ctx = self._now_context()

        lookup_reply = build_schedule_lookup_reply(message, events, _week_days(week), now_ctx)
        if lookup_reply is not None:
            logger.info("Answered schedule lookup without the model")
            return PlannerResult(reply=lookup_reply, source="lookup")

        if not self.ai_client.is_configured():
            return PlannerResult(reply=MISSING_KEY_REPLY, source="config")

        payload = build_planner_payload(
            message=message,
            events=events,
            week=_week_payload(week),
            timezone=self.timezone,
            today=now_ctx.today_date_key,
        )
        try:
            text = self.ai_client.complete(PLANNER_SYSTEM_PROMPT, dump_payload(payload))
        except AIClientError as exc:
            logger.warning("Chat planning model call failed: %s", exc)
            return PlannerResult(reply=MODEL_ERROR_REPLY, source="error", error=str(exc))

        parsed = parse_model_json(text)
        if parsed.parsed:
            result = normalize_planner_response(parsed.payload)
        else:
            logger.info("Model reply was not JSON; using it as plain text")
            result = PlannerResult(reply=parsed.text or EMPTY_MODEL_REPLY)

        if is_smalltalk_message(message):
            return PlannerResult(reply=SMALLTALK_REPLY, source="smalltalk")
        if (
            looks_low_information(result.reply)
            and not result.suggested_events
            and not result.proposed_changes
        ):
            return PlannerResult(reply=SPECIFICS_REPLY, source="template")

        result = reconcile_intent(result, message)
        return result.with_updates(
            reply=inject_relative_date_hints(result.reply, now_ctx.today_date_key)
        )

    def top_tasks(
        self,
        events: Sequence[CalendarEvent],
        week: WeekWindow | dict[str, Any] | None,
        scope: Any,
    ) -> TopTasksResult:
        scope = normalize_scope(scope)
        now_ctx = self._now_context()
        today = now_ctx.today_date_key
        events = active_events(events)

        if not events:
            return TopTasksResult(
                summary=EMPTY_WEEK_SUMMARY,
                top_tasks=[],
                empty_week=True,
                scope=scope,
                today_date_key=today,
                timezone=self.timezone,
                source="empty",
            )

        fallback = build_fallback_top_tasks(events, scope, today, self.timezone)
        fallback_result = TopTasksResult(
            summary=fallback_summary(fallback, scope),
            top_tasks=fallback,
            empty_week=False,
            scope=scope,
            today_date_key=today,
            timezone=self.timezone,
            source="fallback",
        )
        if not self.ai_client.is_configured():
            return fallback_result

        week_payload = _week_payload(week)
        if scope == SCOPE_TODAY:
            window = {"start": today, "end": today}
        else:
            window = {"start": week_payload.get("start"), "end": week_payload.get("end")}
        payload = build_top_tasks_payload(
            events=scope_events(events, scope, today, self.timezone),
            scope=scope,
            window=window,
            timezone=self.timezone,
            today=today,
        )
        try:
            text = self.ai_client.complete(TOP_TASKS_SYSTEM_PROMPT, dump_payload(payload))
        except AIClientError as exc:
            logger.warning("Top-tasks model call failed, using fallback ranking: %s", exc)
            return fallback_result

        parsed = parse_model_json(text)
        if not parsed.parsed:
            logger.info("Top-tasks model output was not JSON, using fallback ranking")
            return fallback_result
        summary, tasks = normalize_top_tasks_response(parsed.payload)
        approved = filter_tasks_to_scope(tasks, scope, today, events)
        if not approved:
            logger.info("No model top tasks survived the %s scope filter", scope)
            return fallback_result

        merged = merge_top_tasks(approved, fallback)
        return TopTasksResult(
            summary=summary or fallback_summary(merged, scope),
            top_tasks=merged,
            empty_week=False,
            scope=scope,
            today_date_key=today,
            timezone=self.timezone,
            source="ai",
        )
