from __future__ import annotations

import logging
import os
import secrets
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from calpilot.ai_client import OpenAICompatibleClient
from calpilot.config_manager import ConfigManager
from calpilot.event_normalizer import normalize_event, normalize_events
from calpilot.google_calendar import (
    CalendarServiceError,
    GoogleCalendarService,
    build_authorization_url,
    exchange_code,
)
from calpilot.models import AppConfig, CalendarEvent, WeekWindow, parse_iso_datetime
from calpilot.orchestrator import PlannerOrchestrator
from calpilot.session_store import SessionStore
from calpilot.time_utils import coerce_week_offset, compute_week_window


logger = logging.getLogger(__name__)

LOGIN_URL = "/auth/login"
REQUIRED_GOOGLE_ENV = ["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI"]


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    week_offset: Any = Field(default=0, alias="weekOffset")


class TopTasksRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    week_offset: Any = Field(default=0, alias="weekOffset")
    scope: Any = "today"


class EventCreateRequest(BaseModel):
    summary: str = ""
    start: str = ""
    end: str = ""
    description: str = ""
    location: str = ""


class EventUpdateRequest(BaseModel):
    summary: str | None = None
    start: str | None = None
    end: str | None = None
    description: str | None = None
    location: str | None = None


class AppContext:
    def __init__(self, config_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        config = self.config_manager.load()
        self.session_store = SessionStore(config.session.store_path)


def _parse_range(start: str, end: str) -> tuple[Any, Any]:
    start_dt = parse_iso_datetime(start)
    end_dt = parse_iso_datetime(end)
    if start_dt is None or end_dt is None or end_dt <= start_dt:
        raise HTTPException(status_code=400, detail="Invalid date range")
    return start_dt, end_dt


def create_app(context: AppContext | None = None) -> FastAPI:
    if context is None:
        context = AppContext(config_path=os.getenv("CALPILOT_CONFIG_PATH", "config.yaml"))

    app = FastAPI(title="Calpilot", version="0.1.0")
    app.state.context = context

    def _config() -> AppConfig:
        return app.state.context.config_manager.load()

    def _set_session_cookie(response: Response, config: AppConfig, sid: str) -> None:
        response.set_cookie(
            config.session.cookie_name,
            sid,
            max_age=config.session.max_age_seconds,
            path="/",
            httponly=True,
            samesite="lax",
        )

    def _ensure_session(request: Request, response: Response, config: AppConfig) -> tuple[str, dict[str, Any]]:
        store = app.state.context.session_store
        sid = request.cookies.get(config.session.cookie_name)
        session = store.get(sid)
        if sid and session is not None:
            return sid, session
        sid, session = store.create()
        _set_session_cookie(response, config, sid)
        return sid, session

    def _require_google_config(config: AppConfig) -> None:
        if not config.google.is_configured():
            raise HTTPException(
                status_code=500,
                detail={"error": "Google OAuth env vars are missing.", "required": REQUIRED_GOOGLE_ENV},
            )

    def _require_auth(request: Request, config: AppConfig) -> tuple[str, dict[str, Any]]:
        _require_google_config(config)
        sid = request.cookies.get(config.session.cookie_name)
        session = app.state.context.session_store.get(sid)
        if not sid or session is None or not session.get("tokens"):
            raise HTTPException(status_code=401, detail={"error": "Not authenticated", "loginUrl": LOGIN_URL})
        return sid, session

    def _calendar(config: AppConfig, session: dict[str, Any]) -> GoogleCalendarService:
        return GoogleCalendarService(config.google, session["tokens"], config.calendar.timezone)

    def _persist_tokens(sid: str, session: dict[str, Any], service: GoogleCalendarService) -> None:
        if service.tokens_refreshed:
            session["tokens"] = service.tokens
            app.state.context.session_store.save(sid, session)

    def _week_and_events(
        config: AppConfig, sid: str, session: dict[str, Any], week_offset: int
    ) -> tuple[WeekWindow, list[CalendarEvent]]:
        week = compute_week_window(week_offset, config.calendar.week_length_days, config.calendar.timezone)
        service = _calendar(config, session)
        try:
            raw_events = service.list_events(week.start, week.end)
        except CalendarServiceError as exc:
            raise HTTPException(status_code=502, detail=f"Failed to read calendar events: {exc}") from exc
        _persist_tokens(sid, session, service)
        return week, normalize_events(raw_events, config.calendar.timezone)

    def _orchestrator(config: AppConfig) -> PlannerOrchestrator:
        return PlannerOrchestrator(OpenAICompatibleClient(config.ai), config.calendar.timezone)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        config = _config()
        return {
            "ok": True,
            "model": config.ai.model,
            "timezone": config.calendar.timezone,
            "weekLengthDays": config.calendar.week_length_days,
            "hasGoogleConfig": config.google.is_configured(),
            "hasOpenAIKey": bool(config.ai.api_key),
        }

    @app.get("/api/me")
    def me(request: Request, response: Response) -> dict[str, Any]:
        config = _config()
        _require_google_config(config)
        sid, session = _ensure_session(request, response, config)
        if not session.get("tokens"):
            return {"authenticated": False, "loginUrl": LOGIN_URL}
        service = _calendar(config, session)
        try:
            profile = service.get_profile()
        except CalendarServiceError as exc:
            raise HTTPException(status_code=502, detail=f"Failed to read profile: {exc}") from exc
        _persist_tokens(sid, session, service)
        return {"authenticated": True, "profile": profile}

    @app.get("/auth/login")
    def login(request: Request) -> RedirectResponse:
        config = _config()
        _require_google_config(config)
        redirect = RedirectResponse(url="/", status_code=302)
        sid, session = _ensure_session(request, redirect, config)
        session["oauth_state"] = secrets.token_hex(16)
        app.state.context.session_store.save(sid, session)
        redirect.headers["location"] = build_authorization_url(config.google, session["oauth_state"])
        return redirect

    @app.get("/auth/callback")
    def callback(request: Request, code: str = "", state: str = "") -> RedirectResponse:
        config = _config()
        _require_google_config(config)
        redirect = RedirectResponse(url="/", status_code=302)
        sid, session = _ensure_session(request, redirect, config)
        if not code:
            raise HTTPException(status_code=400, detail='Missing "code" query value.')
        if not state or state != session.get("oauth_state"):
            raise HTTPException(status_code=400, detail="Invalid OAuth state.")
        try:
            tokens = exchange_code(config.google, code, previous_tokens=session.get("tokens"))
        except CalendarServiceError as exc:
            raise HTTPException(status_code=502, detail=f"OAuth callback failed: {exc}") from exc
        session["tokens"] = tokens
        session["oauth_state"] = None
        app.state.context.session_store.save(sid, session)
        logger.info("Stored Google tokens for a new sign-in")
        return redirect

    @app.post("/auth/logout")
    def logout(request: Request, response: Response) -> dict[str, bool]:
        config = _config()
        app.state.context.session_store.delete(request.cookies.get(config.session.cookie_name))
        response.delete_cookie(config.session.cookie_name, path="/")
        return {"ok": True}

    @app.get("/api/week-events")
    def week_events(request: Request, weekOffset: str = "0") -> dict[str, Any]:
        config = _config()
        sid, session = _require_auth(request, config)
        offset = coerce_week_offset(weekOffset)
        week, events = _week_and_events(config, sid, session, offset)
        payload = week.to_dict()
        payload["weekOffset"] = offset
        return {"week": payload, "events": [event.to_dict() for event in events]}

    @app.post("/api/events", status_code=201)
    def create_event(body: EventCreateRequest, request: Request) -> dict[str, Any]:
        config = _config()
        sid, session = _require_auth(request, config)
        summary = body.summary.strip()
        if not summary or not body.start.strip() or not body.end.strip():
            raise HTTPException(status_code=400, detail="summary, start, end are required")
        start, end = _parse_range(body.start, body.end)
        service = _calendar(config, session)
        try:
            created = service.create_event(
                summary=summary,
                start=start,
                end=end,
                description=body.description.strip(),
                location=body.location.strip(),
            )
        except CalendarServiceError as exc:
            raise HTTPException(status_code=502, detail=f"Failed to create event: {exc}") from exc
        _persist_tokens(sid, session, service)
        return {"ok": True, "event": normalize_event(created, config.calendar.timezone).to_dict()}

    @app.put("/api/events/{event_id}")
    def update_event(event_id: str, body: EventUpdateRequest, request: Request) -> dict[str, Any]:
        config = _config()
        sid, session = _require_auth(request, config)
        start = end = None
        if body.start or body.end:
            if not body.start or not body.end:
                raise HTTPException(status_code=400, detail="Both start and end are required together")
            start, end = _parse_range(body.start, body.end)
        if start is None and body.summary is None and body.description is None and body.location is None:
            raise HTTPException(status_code=400, detail="No update payload provided")
        service = _calendar(config, session)
        try:
            updated = service.update_event(
                event_id,
                summary=body.summary,
                description=body.description,
                location=body.location,
                start=start,
                end=end,
            )
        except CalendarServiceError as exc:
            raise HTTPException(status_code=502, detail=f"Failed to update event: {exc}") from exc
        _persist_tokens(sid, session, service)
        return {"ok": True, "event": normalize_event(updated, config.calendar.timezone).to_dict()}

    @app.delete("/api/events/{event_id}")
    def delete_event(event_id: str, request: Request) -> dict[str, bool]:
        config = _config()
        sid, session = _require_auth(request, config)
        service = _calendar(config, session)
        try:
            service.delete_event(event_id)
        except CalendarServiceError as exc:
            raise HTTPException(status_code=502, detail=f"Failed to delete event: {exc}") from exc
        _persist_tokens(sid, session, service)
        return {"ok": True}

    @app.post("/api/ai/chat")
    def ai_chat(body: ChatRequest, request: Request) -> dict[str, Any]:
        config = _config()
        sid, session = _require_auth(request, config)
        message = body.message.strip()
        if not message:
            raise HTTPException(status_code=400, detail="message is required")
        offset = coerce_week_offset(body.week_offset)
        week, events = _week_and_events(config, sid, session, offset)
        result = _orchestrator(config).plan_chat(message, events, week)
        return {"ok": not result.error, "weekOffset": offset, "ai": result.to_dict()}

    @app.post("/api/ai/top-tasks")
    def ai_top_tasks(body: TopTasksRequest, request: Request) -> dict[str, Any]:
        config = _config()
        sid, session = _require_auth(request, config)
        offset = coerce_week_offset(body.week_offset)
        week, events = _week_and_events(config, sid, session, offset)
        result = _orchestrator(config).top_tasks(events, week, body.scope)
        return {"ok": True, "weekOffset": offset, **result.to_dict()}

    @app.post("/api/ai/test")
    def test_ai_connectivity() -> dict[str, Any]:
        ok, message = OpenAICompatibleClient(_config().ai).test_connectivity()
        return {"ok": ok, "message": message}

    return app
