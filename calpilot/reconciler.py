from __future__ import annotations

import logging

from calpilot.intent import has_modification_intent
from calpilot.models import PlannerResult


logger = logging.getLogger(__name__)


def reconcile_intent(result: PlannerResult, message: str) -> PlannerResult:
    """Keep suggestions and proposed changes from describing the same event twice."""
    if not result.suggested_events or not result.proposed_changes:
        return result

    if has_modification_intent(message):
        logger.debug(
            "Dropping %d suggested events for modification request", len(result.suggested_events)
        )
        return result.with_updates(suggested_events=[])

    update_signatures = {
        change.signature for change in result.proposed_changes if change.action == "update"
    }
    kept = [event for event in result.suggested_events if event.signature not in update_signatures]
    if len(kept) != len(result.suggested_events):
        logger.debug(
            "Dropped %d suggested events duplicating proposed updates",
            len(result.suggested_events) - len(kept),
        )
    return result.with_updates(suggested_events=kept)
