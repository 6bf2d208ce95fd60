"""
Domain-specific exception hierarchy for the booking engine.

Every error carries a stable ``code`` and can be rendered as a structured
payload via ``to_dict()`` so callers can redirect a user to refreshed
availability instead of showing a generic failure.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class SlotUnavailableReason(str, Enum):
    """Why a requested interval cannot be booked."""

    OUTSIDE_HOURS = "outside-hours"
    EXCEPTION_BLOCKED = "exception-blocked"
    BOOKING_CONFLICT = "booking-conflict"
    SERVICE_BLACKOUT = "service-blackout"
    CLIENT_DAILY_LIMIT = "client-daily-limit"
    ADVANCE_NOTICE = "advance-notice"
    BEYOND_HORIZON = "beyond-horizon"


class BookingEngineError(Exception):
    """Base class for all application-level errors."""

    code = "booking_engine_error"

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": str(self)}
        payload.update(self.details())
        return payload


class InvalidTimeFormat(BookingEngineError, ValueError):
    """Raised when a time-of-day or date string is malformed."""

    code = "invalid_time_format"


class InvalidInterval(InvalidTimeFormat):
    """Raised when an interval is inverted, empty or outside the day."""

    code = "invalid_interval"


class SlotTooShort(BookingEngineError):
    """Raised when a candidate is shorter than the service duration."""

    code = "slot_too_short"

    def __init__(self, required_minutes: int, actual_minutes: int):
        self.required_minutes = required_minutes
        self.actual_minutes = actual_minutes
        super().__init__(
            f"Requested interval is {actual_minutes} min, "
            f"service needs {required_minutes} min"
        )

    def details(self) -> Dict[str, Any]:
        return {
            "required_minutes": self.required_minutes,
            "actual_minutes": self.actual_minutes,
        }


class SlotUnavailable(BookingEngineError):
    """Raised when a candidate conflicts with closures or existing bookings."""

    code = "slot_unavailable"

    def __init__(
        self,
        reason: SlotUnavailableReason,
        message: str | None = None,
        conflicting_booking_id: Optional[int] = None,
    ):
        self.reason = reason
        self.conflicting_booking_id = conflicting_booking_id
        super().__init__(message or f"Slot unavailable ({reason.value})")

    def details(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reason": self.reason.value}
        if self.conflicting_booking_id is not None:
            payload["conflicting_booking_id"] = self.conflicting_booking_id
        return payload


class ConcurrencyConflict(BookingEngineError):
    """Raised at commit time when another writer changed the provider's day."""

    code = "concurrency_conflict"


class AlreadyCancelled(BookingEngineError):
    """Raised when cancelling a booking that is already cancelled."""

    code = "already_cancelled"

    def __init__(self, booking_id: Optional[int]):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} is already cancelled")

    def details(self) -> Dict[str, Any]:
        return {"booking_id": self.booking_id}


class InvalidTransition(BookingEngineError):
    """Raised for a booking status change the state machine does not allow."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move booking from {current} to {target}")

    def details(self) -> Dict[str, Any]:
        return {"from": self.current, "to": self.target}


class NotFoundError(BookingEngineError):
    """Base for missing records."""

    code = "not_found"
    entity = "record"

    def __init__(self, record_id: Any):
        self.record_id = record_id
        super().__init__(f"{self.entity.capitalize()} {record_id} not found")

    def details(self) -> Dict[str, Any]:
        return {"id": self.record_id}


class ProviderNotFound(NotFoundError):
    code = "provider_not_found"
    entity = "provider"


class ServiceNotFound(NotFoundError):
    code = "service_not_found"
    entity = "service"


class ClientNotFound(NotFoundError):
    code = "client_not_found"
    entity = "client"


class BookingNotFound(NotFoundError):
    code = "booking_not_found"
    entity = "booking"


class ProviderResolutionError(BookingEngineError):
    """Raised when a booking's provider cannot be determined or does not match."""

    code = "provider_unresolved"
