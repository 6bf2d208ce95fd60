"""
Domain models for providers, their schedules and bookings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .exceptions import InvalidInterval
from .time_grid import Interval, format_time_of_day


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""

    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: "str | BookingStatus") -> "BookingStatus":
        """Parse stored status strings, including legacy upper-case values."""
        if isinstance(value, BookingStatus):
            return value
        normalized = (value or "").strip().lower()
        if normalized == "pending":
            return cls.REQUESTED
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown booking status: {value!r}") from exc


INACTIVE_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.REJECTED})


@dataclass(frozen=True)
class Provider:
    """A schedulable resource (e.g. a staff member)."""
    id: int
    timezone: str = "UTC"
    name: Optional[str] = None


@dataclass(frozen=True)
class Service:
    """
    A bookable offering.

    Invariant: duration_minutes > 0. ``blackout_periods`` are daily windows
    (provider-local) in which the service cannot be booked.
    """
    id: int
    name: str
    duration_minutes: int
    price: Optional[Decimal] = None
    provider_id: Optional[int] = None
    archived: bool = False
    deleted_at: Optional[datetime] = None
    buffer_minutes: int = 0
    group_size: Optional[int] = None
    max_bookings_per_client_per_day: Optional[int] = None
    blackout_periods: Tuple[Interval, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "blackout_periods", tuple(self.blackout_periods))
        if self.duration_minutes <= 0:
            raise ValueError(f"Service {self.id}: duration_minutes must be greater than zero")
        if self.price is not None and self.price < 0:
            raise ValueError(f"Service {self.id}: price must not be negative")
        if self.buffer_minutes < 0:
            raise ValueError(f"Service {self.id}: buffer_minutes must not be negative")
        if self.group_size is not None and self.group_size < 1:
            raise ValueError(f"Service {self.id}: group_size must be at least 1")

    @property
    def is_bookable(self) -> bool:
        return not self.archived and self.deleted_at is None

    @property
    def is_group(self) -> bool:
        return bool(self.group_size and self.group_size > 1)


@dataclass(frozen=True)
class Availability:
    """A recurring weekly open window (weekday 0=Monday)."""
    provider_id: int
    weekday: int
    start_time: str
    end_time: str
    id: Optional[int] = None

    def __post_init__(self):
        if self.weekday not in range(7):
            raise ValueError(f"weekday must be between 0 and 6, got {self.weekday}")
        # Validates format and ordering eagerly
        self.interval

    @property
    def interval(self) -> Interval:
        return Interval.from_strings(self.start_time, self.end_time)


@dataclass(frozen=True)
class Break(Availability):
    """A recurring weekly closed window inside an availability window."""


@dataclass(frozen=True)
class AvailabilityException:
    """
    A date-specific override of the recurring schedule.

    Null start/end times mean the whole day. ``is_available`` decides
    whether the exception opens or blocks time.
    """
    provider_id: int
    date: date
    is_available: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    id: Optional[int] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if (self.start_time is None) != (self.end_time is None):
            raise InvalidInterval(
                "An availability exception needs both start_time and end_time, or neither"
            )
        if not self.is_full_day:
            self.interval

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None and self.end_time is None

    @property
    def interval(self) -> Interval:
        if self.is_full_day:
            return Interval.whole_day()
        return Interval.from_strings(self.start_time, self.end_time)


@dataclass(frozen=True)
class Client:
    """Customer identity."""
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    deleted_at: Optional[datetime] = None
    delete_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


@dataclass(frozen=True)
class Payment:
    """Payment record, one-to-one with a booking."""
    booking_id: int
    amount: Decimal
    status: str
    id: Optional[int] = None
    link: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Booking:
    """
    A reservation of a provider's time for a service.

    Invariant: start_time < end_time.
    """
    date: date
    start_time: str
    end_time: str
    service_id: int
    client_id: int
    provider_id: Optional[int]
    status: BookingStatus = BookingStatus.REQUESTED
    id: Optional[int] = None
    deleted_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    payment_option: Optional[str] = None
    payment_status: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    group_count: Optional[int] = None
    booking_ref: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    payment: Optional[Payment] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "status", BookingStatus.parse(self.status))
        self.interval

    @property
    def interval(self) -> Interval:
        return Interval.from_strings(self.start_time, self.end_time)

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES and self.deleted_at is None

    @property
    def seats(self) -> int:
        return self.group_count or 1


@dataclass(frozen=True)
class Available:
    """Outcome of validating a candidate that can be booked."""
    date: date
    interval: Interval
    provider_id: int
    service_id: int


@dataclass(frozen=True)
class OpenSlot:
    """A bookable candidate interval of a service's duration."""
    date: date
    interval: Interval
    provider_id: int
    service_id: int

    @property
    def start_time(self) -> str:
        return self.interval.start_str()

    @property
    def end_time(self) -> str:
        return self.interval.end_str()

    @property
    def label(self) -> str:
        """Part of the day the slot starts in."""
        if self.interval.start < 12 * 60:
            return "Morning"
        if self.interval.start < 17 * 60:
            return "Afternoon"
        return "Evening"

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:MM - HH:MM (N min)
        """
        weekday = self.date.strftime("%A")
        duration = self.interval.duration_minutes()
        return (
            f"{weekday}, {self.date.isoformat()} | "
            f"{format_time_of_day(self.interval.start)} - "
            f"{format_time_of_day(self.interval.end)} ({duration} min)"
        )
