"""
In-memory schedule store.

Backs the CLI's ``--mock`` mode with the bundled ``mock_schedule_data.json``
and keeps the application services testable without a database.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..domain.exceptions import BookingNotFound
from ..domain.models import (
    Availability,
    AvailabilityException,
    Booking,
    Break,
    Client,
    Provider,
    Service,
)
from .fixtures import DEFAULT_FIXTURE, ScheduleFixture, load_fixture

logger = logging.getLogger(__name__)


class _MemoryReservation:
    """Reservation scope; staged bookings are applied when the scope exits cleanly."""

    def __init__(self, store: "InMemoryScheduleStore", provider_id: int, day: date) -> None:
        self._store = store
        self._provider_id = provider_id
        self._day = day
        self.staged: Dict[int, Booking] = {}

    def _on_day(self, bookings: List[Booking]) -> List[Booking]:
        """Stored bookings overridden by staged ones, limited to active ones on the day."""
        current = [b for b in bookings if b.id not in self.staged]
        current.extend(b for b in self.staged.values() if b.date == self._day)
        return [b for b in current if b.is_active]

    def active_bookings(self) -> List[Booking]:
        return self._on_day(self._store.list_active_bookings(self._provider_id, self._day))

    def client_booking_count(self, client_id: int) -> int:
        bookings = self._on_day(self._store.list_client_bookings(client_id, self._day))
        return sum(1 for b in bookings if b.client_id == client_id)

    def insert_booking(self, booking: Booking) -> Booking:
        stored = replace(booking, id=self._store.next_booking_id())
        self.staged[stored.id] = stored
        return stored

    def update_booking(self, booking_id: int, mutate: Callable[[Booking], Booking]) -> Booking:
        booking = self.staged.get(booking_id) or self._store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        updated = mutate(booking)
        self.staged[booking_id] = updated
        return updated


class InMemoryScheduleStore:
    """
    Thread-safe schedule store holding records in dictionaries.

    Reservations for the same provider and day are serialized with a
    per-key lock, so concurrent writers never observe each other's
    half-finished work. Day locks are created on first use and never
    removed, so the store holds one lock per provider and day it has seen.
    """

    def __init__(self, fixture: Optional[ScheduleFixture] = None) -> None:
        fixture = fixture or ScheduleFixture()
        self._mutex = threading.RLock()
        self._day_locks: Dict[Tuple[int, date], threading.Lock] = {}

        self._providers: Dict[int, Provider] = {p.id: p for p in fixture.providers}
        self._services: Dict[int, Service] = {s.id: s for s in fixture.services}
        self._clients: Dict[int, Client] = {c.id: c for c in fixture.clients}
        self._availabilities: List[Availability] = list(fixture.availabilities)
        self._breaks: List[Break] = list(fixture.breaks)
        self._exceptions: List[AvailabilityException] = list(fixture.exceptions)
        self._bookings: Dict[int, Booking] = {}
        self._next_booking_id = 1

        for booking in fixture.bookings:
            self.add_booking(booking)

    @classmethod
    def from_json(cls, path: Path = DEFAULT_FIXTURE) -> "InMemoryScheduleStore":
        """Create a store from a JSON fixture (defaults to the bundled mock data)."""
        store = cls(load_fixture(path))
        logger.debug("Loaded mock schedule data from %s", path)
        return store

    # Seeding helpers

    def add_provider(self, provider: Provider) -> Provider:
        with self._mutex:
            self._providers[provider.id] = provider
        return provider

    def add_service(self, service: Service) -> Service:
        with self._mutex:
            self._services[service.id] = service
        return service

    def add_client(self, client: Client) -> Client:
        with self._mutex:
            self._clients[client.id] = client
        return client

    def add_availability(self, availability: Availability) -> Availability:
        with self._mutex:
            self._availabilities.append(availability)
        return availability

    def add_break(self, item: Break) -> Break:
        with self._mutex:
            self._breaks.append(item)
        return item

    def add_exception(self, exception: AvailabilityException) -> AvailabilityException:
        with self._mutex:
            self._exceptions.append(exception)
        return exception

    def add_booking(self, booking: Booking) -> Booking:
        """Store a booking as-is, bypassing validation (for seeding)."""
        with self._mutex:
            if booking.id is None:
                booking = replace(booking, id=self.next_booking_id())
            else:
                self._next_booking_id = max(self._next_booking_id, booking.id + 1)
            self._bookings[booking.id] = booking
        return booking

    def next_booking_id(self) -> int:
        with self._mutex:
            booking_id = self._next_booking_id
            self._next_booking_id += 1
            return booking_id

    # Queries

    def get_provider(self, provider_id: int) -> Optional[Provider]:
        return self._providers.get(provider_id)

    def get_service(self, service_id: int) -> Optional[Service]:
        return self._services.get(service_id)

    def get_client(self, client_id: int) -> Optional[Client]:
        return self._clients.get(client_id)

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def list_availabilities(self, provider_id: int, weekday: int) -> List[Availability]:
        with self._mutex:
            return [
                a for a in self._availabilities
                if a.provider_id == provider_id and a.weekday == weekday
            ]

    def list_breaks(self, provider_id: int, weekday: int) -> List[Break]:
        with self._mutex:
            return [b for b in self._breaks if b.provider_id == provider_id and b.weekday == weekday]

    def list_exceptions(self, provider_id: int, day: date) -> List[AvailabilityException]:
        with self._mutex:
            return [e for e in self._exceptions if e.provider_id == provider_id and e.date == day]

    def list_active_bookings(self, provider_id: int, day: date) -> List[Booking]:
        with self._mutex:
            bookings = [
                b for b in self._bookings.values()
                if b.date == day and b.is_active and self._belongs_to(b, provider_id)
            ]
        return sorted(bookings, key=lambda b: (b.interval.start, b.id))

    def list_client_bookings(self, client_id: int, day: date) -> List[Booking]:
        """Active bookings the client holds on ``day`` with any provider."""
        with self._mutex:
            return [
                b for b in self._bookings.values()
                if b.client_id == client_id and b.date == day and b.is_active
            ]

    def _belongs_to(self, booking: Booking, provider_id: int) -> bool:
        if booking.provider_id is not None:
            return booking.provider_id == provider_id
        service = self._services.get(booking.service_id)
        return service is not None and service.provider_id == provider_id

    # Writes

    def _day_lock(self, provider_id: int, day: date) -> threading.Lock:
        with self._mutex:
            return self._day_locks.setdefault((provider_id, day), threading.Lock())

    @contextmanager
    def reserve(self, provider_id: int, day: date) -> Iterator[_MemoryReservation]:
        with self._day_lock(provider_id, day):
            txn = _MemoryReservation(self, provider_id, day)
            yield txn
            with self._mutex:
                for booking in txn.staged.values():
                    self._bookings[booking.id] = booking

    def update_booking(self, booking_id: int, mutate: Callable[[Booking], Booking]) -> Booking:
        with self._mutex:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise BookingNotFound(booking_id)
            updated = mutate(booking)
            self._bookings[booking_id] = updated
            return updated
