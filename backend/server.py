from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Type

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from course_calendar import __version__
from course_calendar.batches import DEFAULT_CALENDAR_ID, create_events, delete_by_batch, generate_batch_id
from course_calendar.calendar_client import GoogleCalendarClient, OAuthFlow, TokenStore, is_authenticated
from course_calendar.config import Settings, configure_logging
from course_calendar.exceptions import (
    AuthenticationError,
    CalendarProviderError,
    ConfigurationError,
    CourseCalendarError,
    GridReadError,
)
from course_calendar.extractor import extract_schedule
from course_calendar.ics_export import DEFAULT_FILENAME, to_calendar_file
from course_calendar.models import CalendarSummary, Course, CreateEventsResult, DeleteBatchResult
from course_calendar.readers import read_grid

settings = Settings()
logger = logging.getLogger("course_calendar_server")
configure_logging(settings.log_level)

DEFAULT_USER_ID = "default"
ERROR_STATUS: Dict[Type[CourseCalendarError], int] = {
    AuthenticationError: 401,
    GridReadError: 400,
    ConfigurationError: 500,
    CalendarProviderError: 502,
}


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(ApiModel):
    status: str
    timestamp: datetime
    version: str


class AuthUrlResponse(ApiModel):
    auth_url: str


class AuthStatusResponse(ApiModel):
    authenticated: bool


class SuccessResponse(ApiModel):
    success: bool = True


class CalendarsResponse(ApiModel):
    calendars: List[CalendarSummary]


class UploadResponse(ApiModel):
    success: bool = True
    file_name: Optional[str] = None
    courses: List[Course]
    warnings: List[str] = Field(default_factory=list)


class ExportRequest(ApiModel):
    courses: List[Course] = Field(min_length=1)


class CreateEventsRequest(ApiModel):
    courses: List[Course] = Field(min_length=1)
    calendar_id: str = DEFAULT_CALENDAR_ID
    batch_id: Optional[str] = None
    timezone: Optional[str] = None


class CreateEventsResponse(CreateEventsResult):
    success: bool = True


class DeleteBatchResponse(DeleteBatchResult):
    success: bool = True


class CalendarService:
    """Per-request access to OAuth and the calendar API; holds no credentials itself."""

    def __init__(self, config: Settings):
        self.config = config
        self.tokens = TokenStore(config.token_dir)

    def oauth_flow(self) -> OAuthFlow:
        return OAuthFlow(self.config.oauth_settings())

    def client_for(self, user_id: str) -> GoogleCalendarClient:
        return GoogleCalendarClient(self.tokens.load(user_id))

    def frontend_url(self, query: str) -> str:
        origin = self.config.frontend_origins[0] if self.config.frontend_origins else ""
        return f"{origin}/?{query}"


service = CalendarService(settings)
app = FastAPI(title="Workday Course Calendar API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.frontend_origins),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


def get_service() -> CalendarService:
    return service


def _http_error(exc: CourseCalendarError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="OK", timestamp=datetime.now(timezone.utc), version=__version__)


@app.get("/api/auth/google/url", response_model=AuthUrlResponse)
async def auth_url(
    user_id: str = Header(DEFAULT_USER_ID, alias="X-User-Id"),
    svc: CalendarService = Depends(get_service),
) -> AuthUrlResponse:
    try:
        url = svc.oauth_flow().get_auth_url(state=user_id)
    except CourseCalendarError as exc:
        raise _http_error(exc) from exc
    return AuthUrlResponse(auth_url=url)


@app.get("/auth/google/callback")
async def auth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    svc: CalendarService = Depends(get_service),
) -> RedirectResponse:
    if error or not code:
        logger.warning("OAuth callback without a code: %s", error or "missing code")
        return RedirectResponse(svc.frontend_url("auth=error"))
    user_id = state or DEFAULT_USER_ID
    try:
        credentials = await asyncio.to_thread(svc.oauth_flow().exchange_code, code)
    except CourseCalendarError as exc:
        logger.warning("OAuth code exchange failed for user %s: %s", user_id, exc)
        return RedirectResponse(svc.frontend_url("auth=error"))
    svc.tokens.save(user_id, credentials)
    logger.info("Stored Google Calendar tokens for user %s", user_id)
    return RedirectResponse(svc.frontend_url("auth=success"))


@app.get("/api/auth/google/status", response_model=AuthStatusResponse)
async def auth_status(
    user_id: str = Header(DEFAULT_USER_ID, alias="X-User-Id"),
    svc: CalendarService = Depends(get_service),
) -> AuthStatusResponse:
    credentials = await asyncio.to_thread(svc.tokens.load, user_id)
    return AuthStatusResponse(authenticated=is_authenticated(credentials))


@app.post("/api/auth/google/disconnect", response_model=SuccessResponse)
async def auth_disconnect(
    user_id: str = Header(DEFAULT_USER_ID, alias="X-User-Id"),
    svc: CalendarService = Depends(get_service),
) -> SuccessResponse:
    svc.tokens.clear(user_id)
    return SuccessResponse()


@app.get("/api/calendars", response_model=CalendarsResponse)
async def calendars(
    user_id: str = Header(DEFAULT_USER_ID, alias="X-User-Id"),
    svc: CalendarService = Depends(get_service),
) -> CalendarsResponse:
    client = svc.client_for(user_id)
    try:
        items = await asyncio.to_thread(client.list_calendars)
    except CourseCalendarError as exc:
        raise _http_error(exc) from exc
    return CalendarsResponse(calendars=items)


@app.post("/api/upload", response_model=UploadResponse)
async def upload(
    file: UploadFile = File(...),
    svc: CalendarService = Depends(get_service),
) -> UploadResponse:
    limit = svc.config.max_upload_bytes
    data = await file.read(limit + 1)
    if len(data) > limit:
        raise HTTPException(status_code=413, detail="File is too large.")

    try:
        grid = await asyncio.to_thread(read_grid, data, file.filename)
    except CourseCalendarError as exc:
        raise _http_error(exc) from exc
    report = extract_schedule(grid)
    logger.info("Upload %s: %s", file.filename, report.summary())
    if not report.courses:
        raise HTTPException(status_code=400, detail="No valid courses found in the file.")
    return UploadResponse(file_name=file.filename, courses=report.courses, warnings=report.warnings)


@app.post("/api/export")
async def export(request: ExportRequest) -> Response:
    document = to_calendar_file(request.courses)
    return Response(
        content=document,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{DEFAULT_FILENAME}"'},
    )


@app.post("/api/calendar/events", response_model=CreateEventsResponse)
async def add_events(
    request: CreateEventsRequest,
    user_id: str = Header(DEFAULT_USER_ID, alias="X-User-Id"),
    svc: CalendarService = Depends(get_service),
) -> CreateEventsResponse:
    client = svc.client_for(user_id)
    if not client.is_authenticated():
        raise HTTPException(status_code=401, detail="Not authenticated with Google Calendar")

    batch_id = request.batch_id or generate_batch_id()
    timeout = svc.config.create_timeout_seconds
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(
                create_events,
                client,
                request.courses,
                request.calendar_id,
                batch_id,
                timezone=request.timezone or svc.config.timezone,
                deadline=time.monotonic() + timeout,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("Batch %s timed out after %s seconds", batch_id, timeout)
        raise HTTPException(
            status_code=504,
            detail=f"Timed out adding events. Events already created can be removed with batch {batch_id}.",
        ) from exc
    except CourseCalendarError as exc:
        raise _http_error(exc) from exc
    return CreateEventsResponse(**result.model_dump())


@app.delete("/api/calendar/batches/{batch_id}", response_model=DeleteBatchResponse)
async def remove_batch(
    batch_id: str,
    calendar_id: str = Query(DEFAULT_CALENDAR_ID, alias="calendarId"),
    user_id: str = Header(DEFAULT_USER_ID, alias="X-User-Id"),
    svc: CalendarService = Depends(get_service),
) -> DeleteBatchResponse:
    client = svc.client_for(user_id)
    try:
        result = await asyncio.to_thread(delete_by_batch, client, batch_id, calendar_id)
    except CourseCalendarError as exc:
        raise _http_error(exc) from exc
    return DeleteBatchResponse(**result.model_dump())
