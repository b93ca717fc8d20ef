from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .recurrence import parse_date, parse_time
from .weekdays import Weekday, join_days, sort_days

UNTITLED_COURSE = "Untitled Course"
DEFAULT_START_TIME = time(9, 0)
DEFAULT_END_TIME = time(10, 0)

# Rows of primitive cell values (str, int, float, date or None); rows may be ragged.
RawGrid = Sequence[Sequence[Any]]


class _CamelModel(BaseModel):
    """Accepts and emits the camelCase keys used by the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Course(_CamelModel):
    """One enrolled course section, normalised from a schedule row."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int = 0
    title: str = UNTITLED_COURSE
    days: Tuple[Weekday, ...] = ()
    start_time: time = DEFAULT_START_TIME
    end_time: time = DEFAULT_END_TIME
    location: str = ""
    instructor: str = ""
    registration_status: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        return text or UNTITLED_COURSE

    @field_validator("location", "instructor", "registration_status", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("days", mode="before")
    @classmethod
    def _coerce_days(cls, value: Any) -> Tuple[Weekday, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            return Weekday.parse_list(value)
        days: List[Weekday] = []
        for item in value:
            day = item if isinstance(item, Weekday) else Weekday.lookup(str(item))
            if day is None:
                raise ValueError(f"Unknown weekday '{item}'")
            days.append(day)
        return sort_days(days)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            parsed = parse_time(value)
            if parsed is None:
                raise ValueError(f"Invalid time '{value}'")
            return parsed
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Optional[date]:
        return parse_date(value)

    @property
    def days_label(self) -> str:
        return join_days(self.days)


@dataclass(frozen=True)
class ColumnMap:
    """Header column index per logical field; ``-1`` marks an unresolved column."""

    course_listing: int = -1
    meeting_patterns: int = -1
    instructor: int = -1
    start_date: int = -1
    end_date: int = -1
    registration_status: int = -1


@dataclass(frozen=True)
class MeetingPattern:
    """Decomposed ``"Mon/Wed | 5:30 PM - 7:00 PM | Room 16"`` cell."""

    days: Tuple[Weekday, ...]
    start_time: time
    end_time: time
    location: str


class ExtractionReport(BaseModel):
    courses: List[Course] = Field(default_factory=list)
    header_row: int = 0
    columns: Optional[ColumnMap] = None
    skipped_rows: int = 0
    warnings: List[str] = Field(default_factory=list)

    def summary(self) -> str:
        return f"{len(self.courses)} courses extracted; {self.skipped_rows} rows filtered out"


class CreateEventsResult(_CamelModel):
    events_created: int = 0
    event_ids: List[str] = Field(default_factory=list)
    batch_id: str
    errors: List[str] = Field(default_factory=list)


class DeleteBatchResult(_CamelModel):
    deleted_count: int = 0
    deleted_ids: List[str] = Field(default_factory=list)
    total_found: int = 0
    errors: List[str] = Field(default_factory=list)


class CalendarSummary(_CamelModel):
    id: str
    summary: str = ""
    primary: bool = False
