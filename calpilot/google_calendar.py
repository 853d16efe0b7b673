from __future__ import annotations

import logging
import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import Any

import httplib2
import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from calpilot.models import GoogleConfig, parse_iso_datetime


logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
# Failures raised by the discovery client, its httplib2 transport and token refresh.
GOOGLE_ERRORS = (HttpError, httplib2.HttpLib2Error, TransportError, RefreshError, OSError)


class CalendarServiceError(RuntimeError):
    """Raised when Google Calendar or the OAuth token endpoint fails."""


def build_authorization_url(config: GoogleConfig, state: str) -> str:
    params = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{AUTH_URI}?{urllib.parse.urlencode(params)}"


def exchange_code(
    config: GoogleConfig,
    code: str,
    previous_tokens: dict[str, Any] | None = None,
    timeout_seconds: int = 30,
) -> dict[str, Any]:
    try:
        response = requests.post(
            TOKEN_URI,
            data={
                "code": code,
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "redirect_uri": config.redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout=timeout_seconds,
        )
    except requests.RequestException as exc:
        raise CalendarServiceError(f"Token exchange failed: {exc}") from exc
    if not response.ok:
        raise CalendarServiceError(f"Token exchange failed: {response.status_code} {response.text[:300]}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise CalendarServiceError("Token exchange returned a non-JSON body.") from exc
    access_token = str(payload.get("access_token", "") or "")
    if not access_token:
        raise CalendarServiceError("Token exchange returned no access_token.")
    refresh_token = payload.get("refresh_token") or (previous_tokens or {}).get("refresh_token")
    expires_in = int(payload.get("expires_in") or 0)
    expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    return {
        "token": access_token,
        "refresh_token": refresh_token,
        "expiry": expiry.isoformat(),
    }


def _naive_utc(value: Any) -> datetime | None:
    parsed = parse_iso_datetime(value) if value else None
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


class GoogleCalendarService:
    """Calendar collaborator for one signed-in user.

    ``tokens`` is the session's token payload; after a refresh it holds the
    new access token and ``tokens_refreshed`` is set so callers can persist it.
    """

    def __init__(self, config: GoogleConfig, tokens: dict[str, Any], timezone_name: str) -> None:
        self.config = config
        self.tokens = dict(tokens or {})
        self.timezone_name = timezone_name
        self.tokens_refreshed = False
        self._credentials: Credentials | None = None
        self._calendar: Any = None

    def _credentials_for_request(self) -> Credentials:
        if self._credentials is None:
            self._credentials = Credentials(
                token=self.tokens.get("token"),
                refresh_token=self.tokens.get("refresh_token"),
                token_uri=TOKEN_URI,
                client_id=self.config.client_id,
                client_secret=self.config.client_secret,
                scopes=SCOPES,
                expiry=_naive_utc(self.tokens.get("expiry")),
            )
        creds = self._credentials
        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(GoogleRequest())
            except GOOGLE_ERRORS as exc:
                raise CalendarServiceError(f"Google token refresh failed: {exc}") from exc
            self.tokens["token"] = creds.token
            if creds.expiry is not None:
                self.tokens["expiry"] = creds.expiry.replace(tzinfo=timezone.utc).isoformat()
            self.tokens_refreshed = True
            logger.info("Refreshed Google access token")
        return creds

    def _calendar_api(self) -> Any:
        creds = self._credentials_for_request()
        if self._calendar is None:
            self._calendar = build("calendar", "v3", credentials=creds, cache_discovery=False)
        return self._calendar

    def _time_body(self, value: datetime) -> dict[str, str]:
        return {"dateTime": value.isoformat(), "timeZone": self.timezone_name}

    def list_events(self, time_min: datetime, time_max: datetime) -> list[dict[str, Any]]:
        try:
            response = (
                self._calendar_api()
                .events()
                .list(
                    calendarId=self.config.calendar_id,
                    timeMin=time_min.isoformat(),
                    timeMax=time_max.isoformat(),
                    singleEvents=True,
                    orderBy="startTime",
                    maxResults=self.config.max_results,
                )
                .execute()
            )
        except GOOGLE_ERRORS as exc:
            raise CalendarServiceError(f"Failed to list events: {exc}") from exc
        items = response.get("items", []) if isinstance(response, dict) else []
        return [item for item in items if isinstance(item, dict)]

    def create_event(
        self,
        *,
        summary: str,
        start: datetime,
        end: datetime,
        description: str = "",
        location: str = "",
    ) -> dict[str, Any]:
        body = {
            "summary": summary,
            "description": description,
            "location": location,
            "start": self._time_body(start),
            "end": self._time_body(end),
        }
        try:
            return self._calendar_api().events().insert(calendarId=self.config.calendar_id, body=body).execute()
        except GOOGLE_ERRORS as exc:
            raise CalendarServiceError(f"Failed to create event: {exc}") from exc

    def update_event(
        self,
        event_id: str,
        *,
        summary: str | None = None,
        description: str | None = None,
        location: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if summary is not None:
            body["summary"] = summary
        if description is not None:
            body["description"] = description
        if location is not None:
            body["location"] = location
        if start is not None and end is not None:
            body["start"] = self._time_body(start)
            body["end"] = self._time_body(end)
        try:
            return (
                self._calendar_api()
                .events()
                .patch(calendarId=self.config.calendar_id, eventId=event_id, body=body)
                .execute()
            )
        except GOOGLE_ERRORS as exc:
            raise CalendarServiceError(f"Failed to update event: {exc}") from exc

    def delete_event(self, event_id: str) -> None:
        try:
            self._calendar_api().events().delete(calendarId=self.config.calendar_id, eventId=event_id).execute()
        except GOOGLE_ERRORS as exc:
            raise CalendarServiceError(f"Failed to delete event: {exc}") from exc

    def get_profile(self) -> dict[str, str]:
        creds = self._credentials_for_request()
        try:
            oauth2 = build("oauth2", "v2", credentials=creds, cache_discovery=False)
            data = oauth2.userinfo().get().execute()
        except GOOGLE_ERRORS as exc:
            raise CalendarServiceError(f"Failed to read profile: {exc}") from exc
        data = data if isinstance(data, dict) else {}
        return {
            "name": str(data.get("name", "") or ""),
            "email": str(data.get("email", "") or ""),
            "picture": str(data.get("picture", "") or ""),
        }
