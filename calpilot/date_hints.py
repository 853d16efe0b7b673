from __future__ import annotations

import re

from calpilot.time_utils import shift_date_key


RELATIVE_DAY_HINTS = (("today", 0), ("tomorrow", 1), ("yesterday", -1))


def inject_relative_date_hints(reply: str, today_date_key: str) -> str:
    """Append ``(tomorrow: 2024-03-11)`` style hints after relative day words.

    A hint is skipped when its date already appears in the reply, which makes
    repeated application a no-op.
    """
    if not reply:
        return reply
    original = reply
    for word, offset in RELATIVE_DAY_HINTS:
        if not re.search(rf"\b{word}\b", original, re.IGNORECASE):
            continue
        resolved = shift_date_key(today_date_key, offset)
        if not resolved or resolved in reply:
            continue
        reply = f"{reply} ({word}: {resolved})"
    return reply
