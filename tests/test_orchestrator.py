import json
import unittest
from datetime import datetime, timezone

from calpilot.ai_client import AIClientError
from calpilot.models import CalendarEvent
from calpilot.orchestrator import (
    EMPTY_WEEK_SUMMARY,
    MISSING_KEY_REPLY,
    MODEL_ERROR_REPLY,
    SMALLTALK_REPLY,
    SPECIFICS_REPLY,
    PlannerOrchestrator,
    looks_low_information,
)
from calpilot.time_utils import compute_week_window


NOW = datetime(2024, 3, 13, 9, 0, tzinfo=timezone.utc)
WEEK = compute_week_window(0, 5, "UTC", now=NOW)


class _FakeAIClient:
    def __init__(self, response: object = "", configured: bool = True) -> None:
        self.response = response
        self.configured = configured
        self.calls: list[tuple[str, str]] = []

    def is_configured(self) -> bool:
        return self.configured

    def complete(self, system_prompt: str, user_content: str) -> str:
        self.calls.append((system_prompt, user_content))
        if isinstance(self.response, Exception):
            raise self.response
        if isinstance(self.response, dict):
            return json.dumps(self.response)
        return str(self.response)


def _event(event_id: str, summary: str, start: str, status: str = "") -> CalendarEvent:
    return CalendarEvent(id=event_id, summary=summary, start=start, date_key=start[:10], status=status)


EVENTS = [
    _event("e1", "Standup", "2024-03-13T09:30:00Z"),
    _event("e2", "Dentist", "2024-03-13T15:00:00Z"),
    _event("e3", "Design review", "2024-03-14T10:00:00Z"),
    _event("e4", "Retro", "2024-03-15T10:00:00Z"),
]


def _orchestrator(client: _FakeAIClient) -> PlannerOrchestrator:
    return PlannerOrchestrator(client, "UTC", now=lambda: NOW)


class PlanChatTests(unittest.TestCase):
    def test_schedule_lookup_skips_model(self) -> None:
        client = _FakeAIClient({"reply": "should not be used"})
        result = _orchestrator(client).plan_chat("What's on my schedule today?", EVENTS, WEEK)
        self.assertEqual(result.source, "lookup")
        self.assertTrue(result.reply.startswith("Here is your schedule for Wednesday (2024-03-13):"))
        self.assertEqual(result.suggested_events, [])
        self.assertEqual(client.calls, [])

    def test_missing_key_short_circuits(self) -> None:
        client = _FakeAIClient(configured=False)
        result = _orchestrator(client).plan_chat("Plan three workouts", EVENTS, WEEK)
        self.assertEqual(result.reply, MISSING_KEY_REPLY)
        self.assertEqual(result.source, "config")
        self.assertEqual(client.calls, [])

    def test_model_result_is_reconciled_and_hinted(self) -> None:
        client = _FakeAIClient(
            {
                "reply": "I moved your review to tomorrow.",
                "suggestedEvents": [
                    {"title": "Design review", "start": "2024-03-14T15:00:00Z", "end": "2024-03-14T16:00:00Z"}
                ],
                "proposedChanges": [
                    {
                        "action": "update",
                        "eventId": "e3",
                        "title": "Design review",
                        "start": "2024-03-14T15:00:00Z",
                        "end": "2024-03-14T16:00:00Z",
                    }
                ],
            }
        )
        result = _orchestrator(client).plan_chat("Move the design review to the afternoon", EVENTS, WEEK)
        self.assertEqual(result.source, "model")
        self.assertEqual(result.suggested_events, [])
        self.assertEqual(len(result.proposed_changes), 1)
        self.assertEqual(result.reply, "I moved your review to tomorrow. (tomorrow: 2024-03-14)")

        payload = json.loads(client.calls[0][1])
        self.assertEqual(payload["userMessage"], "Move the design review to the afternoon")
        self.assertEqual(payload["today"], "2024-03-13")
        self.assertEqual(len(payload["events"]), 4)
        self.assertEqual(len(payload["week"]["days"]), 5)

    def test_plain_text_reply(self) -> None:
        client = _FakeAIClient("Try blocking mornings for deep work.")
        result = _orchestrator(client).plan_chat("Any advice for my week?", EVENTS, WEEK)
        self.assertEqual(result.reply, "Try blocking mornings for deep work.")
        self.assertEqual(result.suggested_events, [])

    def test_empty_model_output(self) -> None:
        client = _FakeAIClient("   ")
        result = _orchestrator(client).plan_chat("Plan my week", EVENTS, WEEK)
        self.assertEqual(result.reply, "AI returned an empty response.")

    def test_smalltalk_discards_suggestions(self) -> None:
        client = _FakeAIClient(
            {
                "reply": "Hello there",
                "suggestedEvents": [{"title": "Gym", "start": "2024-03-14T10:00:00Z", "end": "2024-03-14T11:00:00Z"}],
            }
        )
        result = _orchestrator(client).plan_chat("Hello!", EVENTS, WEEK)
        self.assertEqual(result.reply, SMALLTALK_REPLY)
        self.assertEqual(result.suggested_events, [])
        self.assertEqual(result.source, "smalltalk")

    def test_low_information_reply_prompts_for_specifics(self) -> None:
        client = _FakeAIClient({"reply": "How can I help you with your schedule today?"})
        result = _orchestrator(client).plan_chat("schedule stuff", EVENTS, WEEK)
        self.assertEqual(result.reply, SPECIFICS_REPLY)
        self.assertEqual(result.source, "template")

    def test_low_information_reply_kept_when_suggestions_exist(self) -> None:
        client = _FakeAIClient(
            {
                "reply": "What would you like? Here is one idea.",
                "suggestedEvents": [{"title": "Gym", "start": "2024-03-14T10:00:00Z", "end": "2024-03-14T11:00:00Z"}],
            }
        )
        result = _orchestrator(client).plan_chat("add a workout", EVENTS, WEEK)
        self.assertEqual(result.reply, "What would you like? Here is one idea.")
        self.assertEqual(len(result.suggested_events), 1)

    def test_model_failure_returns_error_reply(self) -> None:
        client = _FakeAIClient(AIClientError("AI request failed: HTTP 500"))
        result = _orchestrator(client).plan_chat("Plan my week", EVENTS, WEEK)
        self.assertEqual(result.reply, MODEL_ERROR_REPLY)
        self.assertEqual(result.source, "error")
        self.assertEqual(result.error, "AI request failed: HTTP 500")
        self.assertEqual(result.to_dict()["error"], "AI request failed: HTTP 500")

    def test_low_information_detection(self) -> None:
        self.assertTrue(looks_low_information("I’m here to help!"))
        self.assertFalse(looks_low_information("Added two gym sessions."))


class TopTasksTests(unittest.TestCase):
    def test_empty_week_skips_model(self) -> None:
        client = _FakeAIClient({"topTasks": []})
        orchestrator = _orchestrator(client)
        for events in ([], [_event("x", "Gone", "2024-03-13T10:00:00Z", status="cancelled")]):
            with self.subTest(events=events):
                result = orchestrator.top_tasks(events, WEEK, "week")
                self.assertTrue(result.empty_week)
                self.assertEqual(result.top_tasks, [])
                self.assertEqual(result.summary, EMPTY_WEEK_SUMMARY)
        self.assertEqual(client.calls, [])

    def test_fallback_when_not_configured(self) -> None:
        result = _orchestrator(_FakeAIClient(configured=False)).top_tasks(EVENTS, WEEK, "today")
        self.assertEqual(result.source, "fallback")
        self.assertEqual([task.source_event_id for task in result.top_tasks], ["e1", "e2"])
        self.assertEqual(result.today_date_key, "2024-03-13")
        self.assertEqual(result.scope, "today")

    def test_fallback_on_model_error(self) -> None:
        client = _FakeAIClient(AIClientError("timed out"))
        result = _orchestrator(client).top_tasks(EVENTS, WEEK, "week")
        self.assertEqual(result.source, "fallback")
        self.assertEqual([task.source_event_id for task in result.top_tasks], ["e1", "e2", "e3"])
        self.assertFalse(result.empty_week)

    def test_fallback_on_unparsed_output(self) -> None:
        result = _orchestrator(_FakeAIClient("no json here")).top_tasks(EVENTS, WEEK, "week")
        self.assertEqual(result.source, "fallback")

    def test_model_tasks_merged_with_fallback(self) -> None:
        client = _FakeAIClient(
            {
                "summary": "Retro prep matters most.",
                "topTasks": [{"title": "Prep retro", "importance": "urgent", "sourceEventId": "e4"}],
            }
        )
        result = _orchestrator(client).top_tasks(EVENTS, WEEK, "week")
        self.assertEqual(result.source, "ai")
        self.assertEqual(result.summary, "Retro prep matters most.")
        self.assertEqual([task.title for task in result.top_tasks], ["Prep retro", "Standup", "Dentist"])
        self.assertEqual(result.top_tasks[0].importance, "high")

        payload = json.loads(client.calls[0][1])
        self.assertEqual(payload["scope"], "week")
        self.assertEqual(len(payload["events"]), 4)

    def test_today_scope_filter_drops_other_days(self) -> None:
        client = _FakeAIClient({"topTasks": [{"title": "Prep retro", "sourceEventId": "e4"}]})
        result = _orchestrator(client).top_tasks(EVENTS, WEEK, "today")
        self.assertEqual(result.source, "fallback")
        self.assertEqual([task.source_event_id for task in result.top_tasks], ["e1", "e2"])

        payload = json.loads(client.calls[0][1])
        self.assertEqual([event["id"] for event in payload["events"]], ["e1", "e2"])
        self.assertEqual(payload["window"], {"start": "2024-03-13", "end": "2024-03-13"})

    def test_result_wire_shape(self) -> None:
        result = _orchestrator(_FakeAIClient(configured=False)).top_tasks(EVENTS, WEEK, "bogus")
        payload = result.to_dict()
        self.assertEqual(payload["scope"], "today")
        self.assertEqual(payload["timezone"], "UTC")
        self.assertFalse(payload["emptyWeek"])
        self.assertEqual(set(payload["topTasks"][0]), {"title", "reason", "importance", "sourceEventId", "targetDate", "time"})


if __name__ == "__main__":
    unittest.main()
