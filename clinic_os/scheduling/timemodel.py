"""Calendar primitives for slot arithmetic.

All wall-clock values are interpreted in the clinician's local calendar as
delivered by the API. Nothing here converts to or from UTC.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime

MINUTES_PER_DAY = 24 * 60

_WALLCLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")
_ISO_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})")


class BadTime(ValueError):
    """Raised for malformed dates, wall-clock times or durations."""


@dataclass(frozen=True, order=True)
class WallClock:
    """A time of day, stored as minutes since midnight."""

    minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.minutes <= MINUTES_PER_DAY:
            raise BadTime(f"Wall-clock offset out of range: {self.minutes}")

    @classmethod
    def parse(cls, value: "str | WallClock") -> "WallClock":
        """Parse a 24-hour ``HH:MM`` string."""
        if isinstance(value, WallClock):
            return value
        if not isinstance(value, str):
            raise BadTime(f"Expected HH:MM string, got {type(value).__name__}")
        m = _WALLCLOCK_RE.match(value)
        if not m:
            raise BadTime(f"Cannot parse wall-clock time: {value!r}")
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour > 23 or minute > 59:
            raise BadTime(f"Wall-clock time out of range: {value!r}")
        return cls(hour * 60 + minute)

    @classmethod
    def of(cls, hour: int, minute: int = 0) -> "WallClock":
        return cls(hour * 60 + minute)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def plus(self, minutes: int) -> "WallClock":
        """Shift by *minutes*; may land exactly on 24:00 but never past it."""
        return WallClock(self.minutes + minutes)

    def wrapping_plus(self, minutes: int) -> "WallClock":
        """Shift by *minutes*, wrapping past midnight."""
        return WallClock((self.minutes + minutes) % MINUTES_PER_DAY)

    def display(self) -> str:
        """12-hour label, e.g. ``2:30 PM``."""
        hour = self.hour % 24
        period = "PM" if hour >= 12 else "AM"
        display_hour = 12 if hour % 12 == 0 else hour % 12
        return f"{display_hour}:{self.minute:02d} {period}"

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class Interval:
    """Half-open interval ``[start, end)`` in minutes since midnight."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise BadTime(f"Interval end must be after start: [{self.start}, {self.end})")

    @classmethod
    def from_start(cls, start: "WallClock | str", duration_minutes: int) -> "Interval":
        if duration_minutes <= 0:
            raise BadTime(f"Duration must be positive, got {duration_minutes}")
        begin = WallClock.parse(start)
        return cls(begin.minutes, begin.minutes + duration_minutes)

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        # Touching endpoints do not overlap.
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end


def weekday_index(day: date) -> int:
    """Weekday with Sunday = 0 ... Saturday = 6."""
    return (day.weekday() + 1) % 7


def parse_date(value: "str | date") -> date:
    """Parse ``YYYY-MM-DD``; the date part of a full ISO timestamp is taken verbatim."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise BadTime(f"Expected ISO date string, got {type(value).__name__}")
    m = _ISO_DATE_RE.match(value)
    if not m:
        raise BadTime(f"Cannot parse date: {value!r}")
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError as e:
        raise BadTime(f"Invalid calendar date: {value!r}") from e


def same_day(a: date, b: date) -> bool:
    return (a.year, a.month, a.day) == (b.year, b.month, b.day)
