from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow, InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .exceptions import AuthenticationError, CalendarProviderError
from .models import CalendarSummary

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
PAGE_SIZE = 250
SAFE_USER_ID_RE = re.compile(r"[^A-Za-z0-9_.-]")
# Connection drops, timeouts and token refresh failures during a request.
TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error, TransportError, RefreshError)


class CalendarClient(Protocol):
    """What the batch operations need from an authenticated calendar backend."""

    def is_authenticated(self) -> bool: ...

    def insert_event(self, calendar_id: str, body: Mapping[str, Any]) -> Dict[str, Any]: ...

    def list_events(self, calendar_id: str, private_properties: Mapping[str, str]) -> List[Dict[str, Any]]: ...

    def delete_event(self, calendar_id: str, event_id: str) -> None: ...


@dataclass(frozen=True)
class OAuthSettings:
    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: Sequence[str] = field(default_factory=lambda: tuple(SCOPES))

    def client_config(self, client_type: str = "web") -> Dict[str, Any]:
        return {
            client_type: {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }


class OAuthFlow:
    """Web-server OAuth flow: build the consent URL, then trade the code for tokens."""

    def __init__(self, settings: OAuthSettings):
        self.settings = settings

    def get_auth_url(self, state: str | None = None) -> str:
        flow = self._flow()
        url, _state = flow.authorization_url(access_type="offline", prompt="consent", state=state)
        return url

    def exchange_code(self, code: str) -> Credentials:
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as exc:  # pragma: no cover - oauthlib and transport errors
            raise AuthenticationError(f"Failed to get access tokens: {exc}") from exc
        return flow.credentials

    def run_local(self, *, open_browser: bool = True) -> Credentials:
        """Installed-app flow used by the CLI (local redirect server)."""
        flow = InstalledAppFlow.from_client_config(
            self.settings.client_config("installed"), list(self.settings.scopes)
        )
        return flow.run_local_server(port=0, open_browser=open_browser)

    def _flow(self) -> Flow:
        return Flow.from_client_config(
            self.settings.client_config(),
            scopes=list(self.settings.scopes),
            redirect_uri=self.settings.redirect_uri,
            autogenerate_code_verifier=False,
        )


def is_authenticated(credentials: Credentials | None) -> bool:
    if credentials is None:
        return False
    return bool(credentials.valid or credentials.refresh_token)


class TokenStore:
    """Per-user OAuth tokens kept as JSON files under one directory."""

    def __init__(self, directory: str | Path, scopes: Sequence[str] = tuple(SCOPES)):
        self.directory = Path(directory)
        self.scopes = list(scopes)

    def path_for(self, user_id: str) -> Path:
        safe = SAFE_USER_ID_RE.sub("_", user_id.strip()) or "default"
        return self.directory / f"{safe}.json"

    def load(self, user_id: str) -> Credentials | None:
        path = self.path_for(user_id)
        if not path.exists():
            return None
        try:
            creds = Credentials.from_authorized_user_file(str(path), self.scopes)
        except (ValueError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable token file for user %s: %s", user_id, exc)
            return None
        if not creds.valid and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except (RefreshError, TransportError) as exc:
                logger.warning("Token refresh failed for user %s: %s", user_id, exc)
                return None
            self.save(user_id, creds)
        return creds

    def save(self, user_id: str, credentials: Credentials) -> None:
        path = self.path_for(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(credentials.to_json(), encoding="utf-8")

    def clear(self, user_id: str) -> None:
        self.path_for(user_id).unlink(missing_ok=True)


class GoogleCalendarClient:
    """Thin wrapper around the Google Calendar API for one user's credential.

    Build one per request; instances hold the credential and must not be shared.
    """

    def __init__(self, credentials: Credentials | None, *, service: Any = None):
        self.credentials = credentials
        self._service = service

    def is_authenticated(self) -> bool:
        return self._service is not None or is_authenticated(self.credentials)

    def ensure_authenticated(self) -> None:
        if self._service is None:
            if not is_authenticated(self.credentials):
                raise AuthenticationError(
                    "No authentication tokens found. Please authenticate with Google Calendar first."
                )
            self._service = build("calendar", "v3", credentials=self.credentials, cache_discovery=False)

    def list_calendars(self) -> List[CalendarSummary]:
        self.ensure_authenticated()
        assert self._service is not None

        calendars: List[CalendarSummary] = []
        page_token: Optional[str] = None
        while True:
            response = self._execute(
                self._service.calendarList().list(pageToken=page_token),
                "Failed to get calendars",
            )
            for item in response.get("items", []) or []:
                calendars.append(
                    CalendarSummary(
                        id=item.get("id", ""),
                        summary=item.get("summary", ""),
                        primary=bool(item.get("primary", False)),
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                return calendars

    def insert_event(self, calendar_id: str, body: Mapping[str, Any]) -> Dict[str, Any]:
        self.ensure_authenticated()
        assert self._service is not None
        return self._execute(
            self._service.events().insert(calendarId=calendar_id, body=dict(body)),
            f"Failed to create event '{body.get('summary', '')}'",
        )

    def list_events(self, calendar_id: str, private_properties: Mapping[str, str]) -> List[Dict[str, Any]]:
        """All events (recurring masters, not expanded instances) carrying the private properties."""
        self.ensure_authenticated()
        assert self._service is not None

        filters = [f"{key}={value}" for key, value in private_properties.items()]
        items: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            response = self._execute(
                self._service.events().list(
                    calendarId=calendar_id,
                    privateExtendedProperty=filters,
                    singleEvents=False,
                    showDeleted=False,
                    maxResults=PAGE_SIZE,
                    pageToken=page_token,
                ),
                "Failed to list events",
            )
            items.extend(response.get("items", []) or [])
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        self.ensure_authenticated()
        assert self._service is not None
        self._execute(
            self._service.events().delete(calendarId=calendar_id, eventId=event_id),
            f"Failed to delete event '{event_id}'",
        )

    @staticmethod
    def _execute(request: Any, message: str) -> Dict[str, Any]:
        try:
            return request.execute() or {}
        except HttpError as exc:
            raise CalendarProviderError(f"{message}: {exc}") from exc
        except TRANSPORT_ERRORS as exc:
            raise CalendarProviderError(f"{message}: {exc.__class__.__name__} {exc}".rstrip()) from exc
