import unittest

from calpilot.models import PlannerResult, ProposedChange, SuggestedEvent
from calpilot.reconciler import reconcile_intent


def _suggested(title: str, start: str = "2024-03-14T10:00:00Z", end: str = "2024-03-14T11:00:00Z") -> SuggestedEvent:
    return SuggestedEvent(title=title, start=start, end=end)


class ReconcilerTests(unittest.TestCase):
    def test_modification_message_clears_suggestions(self) -> None:
        result = PlannerResult(
            reply="Moved.",
            suggested_events=[_suggested("Team Sync")],
            proposed_changes=[ProposedChange(action="update", event_id="evt-1", title="Team Sync")],
        )
        reconciled = reconcile_intent(result, "move my meeting to tomorrow")
        self.assertEqual(reconciled.suggested_events, [])
        self.assertEqual(len(reconciled.proposed_changes), 1)
        self.assertEqual(len(result.suggested_events), 1)

    def test_unchanged_when_either_list_empty(self) -> None:
        only_suggestions = PlannerResult(suggested_events=[_suggested("Gym")])
        self.assertIs(reconcile_intent(only_suggestions, "delete my gym session"), only_suggestions)
        only_changes = PlannerResult(proposed_changes=[ProposedChange(action="delete", event_id="x")])
        self.assertIs(reconcile_intent(only_changes, "plan my week"), only_changes)

    def test_drops_suggestions_matching_update_signature(self) -> None:
        result = PlannerResult(
            suggested_events=[_suggested("Team Sync"), _suggested("Lunch walk")],
            proposed_changes=[
                ProposedChange(
                    action="update",
                    event_id="evt-1",
                    title="team sync",
                    start="2024-03-14T10:00:00Z",
                    end="2024-03-14T11:00:00Z",
                ),
                ProposedChange(
                    action="delete",
                    event_id="evt-2",
                    title="Lunch walk",
                    start="2024-03-14T10:00:00Z",
                    end="2024-03-14T11:00:00Z",
                ),
            ],
        )
        reconciled = reconcile_intent(result, "plan a better thursday")
        self.assertEqual([event.title for event in reconciled.suggested_events], ["Lunch walk"])

    def test_different_times_are_not_duplicates(self) -> None:
        result = PlannerResult(
            suggested_events=[_suggested("Team Sync", start="2024-03-14T15:00:00Z", end="2024-03-14T16:00:00Z")],
            proposed_changes=[
                ProposedChange(
                    action="update",
                    event_id="evt-1",
                    title="Team Sync",
                    start="2024-03-14T10:00:00Z",
                    end="2024-03-14T11:00:00Z",
                )
            ],
        )
        self.assertEqual(len(reconcile_intent(result, "plan thursday").suggested_events), 1)


if __name__ == "__main__":
    unittest.main()
