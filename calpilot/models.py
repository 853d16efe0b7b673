from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


DEFAULT_TIMEZONE = "Asia/Seoul"
DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_AI_BASE_URL = "https://api.openai.com/v1"
WEEK_LENGTHS = (5, 7)

MAX_SUGGESTED_EVENTS = 4
MAX_PROPOSED_CHANGES = 3
MAX_TOP_TASKS = 3
MAX_ATTACHMENTS = 10

CHANGE_ACTIONS = ("update", "delete")


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 instant, returning None instead of raising on bad input."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _ensure_tz(parsed)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


def _int_in_range(value: Any, default: int, minimum: int) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return default


@dataclass
class GoogleConfig:
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    calendar_id: str = "primary"
    max_results: int = 300

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "GoogleConfig":
        data = data or {}
        return cls(
            client_id=str(data.get("client_id", "")).strip(),
            client_secret=str(data.get("client_secret", "")).strip(),
            redirect_uri=str(data.get("redirect_uri", "")).strip(),
            calendar_id=str(data.get("calendar_id", "primary")).strip() or "primary",
            max_results=_int_in_range(data.get("max_results", 300), 300, 1),
        )

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


@dataclass
class AIConfig:
    base_url: str = DEFAULT_AI_BASE_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    timeout_seconds: int = 60
    temperature: float = 0.35

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AIConfig":
        data = data or {}
        try:
            temperature = float(data.get("temperature", 0.35))
        except (TypeError, ValueError):
            temperature = 0.35
        return cls(
            base_url=str(data.get("base_url", DEFAULT_AI_BASE_URL)).strip() or DEFAULT_AI_BASE_URL,
            api_key=str(data.get("api_key", "")).strip(),
            model=str(data.get("model", DEFAULT_MODEL)).strip() or DEFAULT_MODEL,
            timeout_seconds=_int_in_range(data.get("timeout_seconds", 60), 60, 1),
            temperature=temperature,
        )


@dataclass
class CalendarConfig:
    timezone: str = DEFAULT_TIMEZONE
    week_length_days: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalendarConfig":
        data = data or {}
        week_length = _int_in_range(data.get("week_length_days", 5), 5, 1)
        if week_length not in WEEK_LENGTHS:
            week_length = 5
        return cls(
            timezone=str(data.get("timezone", DEFAULT_TIMEZONE)).strip() or DEFAULT_TIMEZONE,
            week_length_days=week_length,
        )


@dataclass
class SessionConfig:
    store_path: str = "data/sessions.db"
    cookie_name: str = "sid"
    max_age_seconds: int = 604800

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SessionConfig":
        data = data or {}
        return cls(
            store_path=str(data.get("store_path", "data/sessions.db")).strip() or "data/sessions.db",
            cookie_name=str(data.get("cookie_name", "sid")).strip() or "sid",
            max_age_seconds=_int_in_range(data.get("max_age_seconds", 604800), 604800, 60),
        )


@dataclass
class AppConfig:
    google: GoogleConfig = field(default_factory=GoogleConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            google=GoogleConfig.from_dict(data.get("google")),
            ai=AIConfig.from_dict(data.get("ai")),
            calendar=CalendarConfig.from_dict(data.get("calendar")),
            session=SessionConfig.from_dict(data.get("session")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_app_config() -> AppConfig:
    return AppConfig()


@dataclass(frozen=True)
class Attachment:
    title: str = ""
    file_url: str = ""
    mime_type: str = ""
    icon_link: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "title": self.title,
            "fileUrl": self.file_url,
            "mimeType": self.mime_type,
            "iconLink": self.icon_link,
        }


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    summary: str = ""
    description: str = ""
    location: str = ""
    start: str | None = None
    end: str | None = None
    all_day: bool = False
    date_key: str | None = None
    duration_minutes: int | None = None
    duration_days: int | None = None
    timezone: str = DEFAULT_TIMEZONE
    attachments: tuple[Attachment, ...] = ()
    conference_link: str = ""
    status: str = ""
    html_link: str = ""

    @property
    def cancelled(self) -> bool:
        return self.status.lower() == "cancelled"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "summary": self.summary,
            "description": self.description,
            "location": self.location,
            "start": self.start,
            "end": self.end,
            "allDay": self.all_day,
            "dateKey": self.date_key,
            "durationMinutes": self.duration_minutes,
            "durationDays": self.duration_days,
            "timezone": self.timezone,
            "attachments": [item.to_dict() for item in self.attachments],
            "conferenceLink": self.conference_link,
            "status": self.status,
            "htmlLink": self.html_link,
        }


@dataclass(frozen=True)
class NowContext:
    now: datetime
    today_date_key: str
    weekday_name: str
    timezone: str


@dataclass(frozen=True)
class WeekDay:
    index: int
    name: str
    date_key: str
    iso: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "name": self.name, "dateKey": self.date_key, "iso": self.iso}


@dataclass(frozen=True)
class WeekWindow:
    start: datetime
    end: datetime
    days: tuple[WeekDay, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": serialize_datetime(self.start),
            "end": serialize_datetime(self.end),
            "days": [day.to_dict() for day in self.days],
        }


@dataclass
class SuggestedEvent:
    title: str
    start: str
    end: str
    description: str = ""
    location: str = ""
    reason: str = ""

    @property
    def signature(self) -> str:
        return f"{self.title.lower()}|{self.start}|{self.end}"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class ProposedChange:
    action: str
    event_id: str
    title: str = ""
    start: str = ""
    end: str = ""
    description: str = ""
    location: str = ""
    reason: str = ""

    @property
    def signature(self) -> str:
        return f"{self.title.lower()}|{self.start}|{self.end}"

    def to_dict(self) -> dict[str, str]:
        return {
            "action": self.action,
            "eventId": self.event_id,
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "description": self.description,
            "location": self.location,
            "reason": self.reason,
        }


@dataclass
class PlannerResult:
    reply: str = ""
    suggested_events: list[SuggestedEvent] = field(default_factory=list)
    proposed_changes: list[ProposedChange] = field(default_factory=list)
    source: str = "model"
    error: str = ""

    def with_updates(self, **kwargs: Any) -> "PlannerResult":
        values = {
            "reply": self.reply,
            "suggested_events": list(self.suggested_events),
            "proposed_changes": list(self.proposed_changes),
            "source": self.source,
            "error": self.error,
        }
        values.update(kwargs)
        return PlannerResult(**values)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "reply": self.reply,
            "suggestedEvents": [item.to_dict() for item in self.suggested_events],
            "proposedChanges": [item.to_dict() for item in self.proposed_changes],
            "source": self.source,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class TopTask:
    title: str
    reason: str = ""
    importance: str = "medium"
    source_event_id: str = ""
    target_date: str = ""
    time: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "title": self.title,
            "reason": self.reason,
            "importance": self.importance,
            "sourceEventId": self.source_event_id,
            "targetDate": self.target_date,
            "time": self.time,
        }


@dataclass
class TopTasksResult:
    summary: str
    top_tasks: list[TopTask]
    empty_week: bool
    scope: str
    today_date_key: str
    timezone: str
    source: str = "fallback"

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "topTasks": [task.to_dict() for task in self.top_tasks],
            "emptyWeek": self.empty_week,
            "scope": self.scope,
            "todayDateKey": self.today_date_key,
            "timezone": self.timezone,
            "source": self.source,
        }
