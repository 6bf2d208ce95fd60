"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService
from .ports import ReservationTransaction, ScheduleStoreProtocol
from .reservation import SlotReservationService

__all__ = [
    "AvailabilityService",
    "ReservationTransaction",
    "ScheduleStoreProtocol",
    "SlotReservationService",
]
