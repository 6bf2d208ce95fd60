"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Availability,
    AvailabilityException,
    Available,
    Booking,
    BookingStatus,
    Break,
    Client,
    OpenSlot,
    Payment,
    Provider,
    Service,
)
from .overlay import DaySchedule, ExceptionOverlay
from .recurring import RecurringAvailabilityResolver
from .slot_calculator import SlotCalculator
from .time_grid import Interval

__all__ = [
    "Availability",
    "AvailabilityException",
    "Available",
    "Booking",
    "BookingStatus",
    "Break",
    "Client",
    "DaySchedule",
    "ExceptionOverlay",
    "Interval",
    "OpenSlot",
    "Payment",
    "Provider",
    "RecurringAvailabilityResolver",
    "Service",
    "SlotCalculator",
]
