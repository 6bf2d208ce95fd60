"""
Storage protocols the application services depend on.

Both the SQLAlchemy store and the in-memory store satisfy these, which keeps
the services testable without a database.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, ContextManager, List, Optional, Protocol

from ..domain.models import (
    Availability,
    AvailabilityException,
    Booking,
    Break,
    Client,
    Provider,
    Service,
)


class ReservationTransaction(Protocol):
    """Write scope over one provider's bookings for one day."""

    def active_bookings(self) -> List[Booking]:
        """Live, locked view of the provider's active bookings for the day."""

    def client_booking_count(self, client_id: int) -> int:
        """Active bookings the client already holds on the day (any provider)."""

    def insert_booking(self, booking: Booking) -> Booking:
        """Stage a booking; it is committed when the scope exits cleanly."""

    def update_booking(self, booking_id: int, mutate: Callable[[Booking], Booking]) -> Booking:
        """
        Apply ``mutate`` to a stored booking within the scope.

        Raises:
            BookingNotFound: If no booking has that id
        """


class ScheduleStoreProtocol(Protocol):
    """Query and transactional write capability over the scheduling entities."""

    def get_provider(self, provider_id: int) -> Optional[Provider]: ...

    def get_service(self, service_id: int) -> Optional[Service]: ...

    def get_client(self, client_id: int) -> Optional[Client]: ...

    def get_booking(self, booking_id: int) -> Optional[Booking]: ...

    def list_availabilities(self, provider_id: int, weekday: int) -> List[Availability]: ...

    def list_breaks(self, provider_id: int, weekday: int) -> List[Break]: ...

    def list_exceptions(self, provider_id: int, day: date) -> List[AvailabilityException]: ...

    def list_active_bookings(self, provider_id: int, day: date) -> List[Booking]:
        """
        Active bookings of the provider on ``day``.

        Bookings without a provider count when their service belongs to it.
        """

    def reserve(self, provider_id: int, day: date) -> ContextManager[ReservationTransaction]:
        """
        Open a serialized write scope for (provider, day).

        Raises:
            ConcurrencyConflict: If another writer committed to the same
                provider and day while this scope was open
        """

    def update_booking(
        self,
        booking_id: int,
        mutate: Callable[[Booking], Booking]
    ) -> Booking:
        """
        Load a booking under lock, apply ``mutate`` and persist the result.

        Raises:
            BookingNotFound: If no booking has that id
        """
