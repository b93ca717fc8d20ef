from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, List, Tuple

DAY_SEPARATORS_RE = re.compile(r"[/,]")


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @property
    def abbreviation(self) -> str:
        """Two-letter iCalendar BYDAY code (``MO`` .. ``SU``)."""
        return self.name[:2]

    @property
    def prefix(self) -> str:
        """Three-letter prefix used by Workday meeting patterns (``Mon`` .. ``Sun``)."""
        return self.value[:3]

    @property
    def python_weekday(self) -> int:
        """Index compatible with ``date.weekday()`` (Monday == 0)."""
        return _ORDER.index(self)

    @classmethod
    def in_fragment(cls, fragment: str) -> List["Weekday"]:
        """Return every weekday whose prefix occurs in ``fragment`` (case-sensitive)."""
        return [day for day in _ORDER if day.prefix in fragment]

    @classmethod
    def lookup(cls, token: str) -> "Weekday | None":
        """Resolve a full name or three-letter abbreviation, ignoring case."""
        return _LOOKUP.get(token.strip().lower())

    @classmethod
    def parse_list(cls, text: str | None) -> Tuple["Weekday", ...]:
        """Parse ``"Monday/Wednesday"`` or ``"Mon, Wed"`` into canonical order.

        Unknown tokens are ignored; an empty tuple means nothing matched.
        """
        if not text:
            return ()
        found = (cls.lookup(token) for token in DAY_SEPARATORS_RE.split(text))
        return sort_days(day for day in found if day is not None)


_ORDER: Tuple[Weekday, ...] = tuple(Weekday)
_LOOKUP = {
    **{day.value.lower(): day for day in _ORDER},
    **{day.prefix.lower(): day for day in _ORDER},
}


def sort_days(days: Iterable[Weekday]) -> Tuple[Weekday, ...]:
    """De-duplicate and order days Monday-first."""
    unique = set(days)
    return tuple(day for day in _ORDER if day in unique)


def join_days(days: Iterable[Weekday]) -> str:
    return "/".join(day.value for day in days)
