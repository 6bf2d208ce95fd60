"""
Time grid primitives: time-of-day in minutes, calendar days and intervals.

All time-of-day values are local to the provider's timezone and expressed as
minutes since midnight. Intervals are half-open ``[start, end)`` so that
back-to-back slots do not overlap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

import pendulum
from pendulum import DateTime

from .exceptions import InvalidInterval, InvalidTimeFormat

MINUTES_PER_DAY = 24 * 60
END_OF_DAY = "24:00"  # only meaningful as an interval end

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time_of_day(value: str) -> int:
    """
    Parse a 24-hour ``HH:MM`` string into minutes since midnight.

    ``24:00`` is accepted and maps to 1440 so a window can close at midnight;
    ``Interval`` rejects it as a start.

    Raises:
        InvalidTimeFormat: If the value is not a two-digit 24-hour time
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(f"Expected an 'HH:MM' string, got {value!r}")

    value = value.strip()
    if value == END_OF_DAY:
        return MINUTES_PER_DAY

    match = _TIME_OF_DAY.match(value)
    if not match:
        raise InvalidTimeFormat(f"Invalid time of day: {value!r} (expected HH:MM)")

    return int(match.group(1)) * 60 + int(match.group(2))


def format_time_of_day(minutes: int) -> str:
    """Render minutes since midnight as ``HH:MM`` (end of day is ``24:00``)."""
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise InvalidTimeFormat(f"Minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap test: ``[a_start, a_end)`` against ``[b_start, b_end)``."""
    return a_start < b_end and b_start < a_end


def require_ordered(start: int, end: int) -> None:
    """Raise ``InvalidInterval`` unless ``start < end``."""
    if start >= end:
        raise InvalidInterval(
            f"Start {format_time_of_day(start)} must be before end {format_time_of_day(end)}"
        )


def parse_date(value: str | date) -> date:
    """Parse a ``YYYY-MM-DD`` string into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
    except (ValueError, AttributeError) as exc:
        raise InvalidTimeFormat(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from exc


def weekday_of(day: date | datetime, timezone: str) -> int:
    """
    Return the weekday (0=Monday .. 6=Sunday) of a day in the given timezone.

    Datetimes are converted into ``timezone`` first (naive values are taken
    as UTC); plain dates are already calendar days in that zone.
    """
    if isinstance(day, datetime):
        return pendulum.instance(day).in_timezone(timezone).weekday()
    return day.weekday()


def local_datetime(day: date, minutes: int, timezone: str) -> DateTime:
    """Build the timezone-aware moment ``minutes`` after local midnight of ``day``."""
    extra_days, minute_of_day = divmod(minutes, MINUTES_PER_DAY)
    base = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
    if extra_days:
        base = base.add(days=extra_days)
    return base.set(hour=minute_of_day // 60, minute=minute_of_day % 60)


@dataclass(frozen=True, order=True)
class Interval:
    """
    Immutable half-open interval of minutes within one local day.

    Invariant: 0 <= start < end <= 1440.
    """
    start: int
    end: int

    def __post_init__(self):
        if not (0 <= self.start <= MINUTES_PER_DAY and 0 <= self.end <= MINUTES_PER_DAY):
            raise InvalidInterval(f"Interval {self.start}-{self.end} is outside the day")
        require_ordered(self.start, self.end)

    @classmethod
    def from_strings(cls, start: str, end: str) -> "Interval":
        """Build an interval from two ``HH:MM`` strings."""
        return cls(parse_time_of_day(start), parse_time_of_day(end))

    @classmethod
    def whole_day(cls) -> "Interval":
        return cls(0, MINUTES_PER_DAY)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        """Check if this interval overlaps with another."""
        return overlaps(self.start, self.end, other.start, other.end)

    def contains(self, other: "Interval") -> bool:
        """Check if ``other`` lies entirely within this interval."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "Interval") -> "Interval | None":
        """
        Calculate the intersection of two intervals.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None
        return Interval(max(self.start, other.start), min(self.end, other.end))

    def start_str(self) -> str:
        return format_time_of_day(self.start)

    def end_str(self) -> str:
        return format_time_of_day(self.end)

    def __str__(self) -> str:
        return f"{self.start_str()}-{self.end_str()}"
