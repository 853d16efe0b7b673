from __future__ import annotations

import re
from dataclasses import dataclass


INTENT_LOOKUP = "lookup"
INTENT_MODIFICATION = "modification"
INTENT_SMALLTALK = "smalltalk"
INTENT_NONE = "none"

WEEKDAY_TOKENS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
RELATIVE_DAY_TOKENS = ("today", "tomorrow", "yesterday")

DAY_REFERENCE_PATTERN = re.compile(
    r"\b(" + "|".join(RELATIVE_DAY_TOKENS + WEEKDAY_TOKENS) + r")\b",
    re.IGNORECASE,
)
LOOKUP_PATTERN = re.compile(
    r"\b(schedule|events?|calendar|busy|free|show|list)\b"
    r"|\b(what(?:['’]s|s| is| do| does)?|when|anything|any plans?|do i have|am i)\b"
    r"|\?",
    re.IGNORECASE,
)
MODIFICATION_PATTERN = re.compile(
    r"\b(mov(?:e|es|ed|ing)|resched\w*|chang\w*|updat\w*|edit\w*|modif\w*"
    r"|delet\w*|remov\w*|cancel\w*|shift\w*|postpon\w*)\b",
    re.IGNORECASE,
)
SMALLTALK_PATTERN = re.compile(
    r"^\s*(hi|hello|hey|yo|hiya|howdy|hi there|hello there|hey there"
    r"|good (?:morning|afternoon|evening)|thanks|thank you|thank you so much|thanks a lot"
    r"|thx|ty|ok|okay|cool|great|bye|goodbye)\s*[!.?~]*\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class MessageIntent:
    kind: str

    @property
    def is_lookup(self) -> bool:
        return self.kind == INTENT_LOOKUP

    @property
    def is_modification(self) -> bool:
        return self.kind == INTENT_MODIFICATION

    @property
    def is_smalltalk(self) -> bool:
        return self.kind == INTENT_SMALLTALK


def has_modification_intent(text: str) -> bool:
    return bool(MODIFICATION_PATTERN.search(text or ""))


def is_smalltalk_message(text: str) -> bool:
    return bool(SMALLTALK_PATTERN.match(text or ""))


def classify_message(text: str) -> MessageIntent:
    """Classify a chat message; modification intent always beats lookup intent."""
    message = text or ""
    if is_smalltalk_message(message):
        return MessageIntent(INTENT_SMALLTALK)
    if has_modification_intent(message):
        return MessageIntent(INTENT_MODIFICATION)
    if DAY_REFERENCE_PATTERN.search(message) and LOOKUP_PATTERN.search(message):
        return MessageIntent(INTENT_LOOKUP)
    return MessageIntent(INTENT_NONE)
