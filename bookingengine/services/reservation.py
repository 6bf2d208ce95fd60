"""
Slot reservation: the write path for bookings.

A request is checked against a read-only view first, then re-validated inside
the store's reservation scope against live data before the booking row is
inserted. A failed re-validation is a rejected request; a commit-time
``ConcurrencyConflict`` is retried with exponential backoff before it is
surfaced as ``SlotUnavailable``.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from datetime import date
from typing import Callable, Optional

from ..config import ReservationConfig
from ..domain.booking_state import transition
from ..domain.exceptions import (
    AlreadyCancelled,
    BookingNotFound,
    ClientNotFound,
    ConcurrencyConflict,
    InvalidTransition,
    SlotUnavailable,
    SlotUnavailableReason,
)
from ..domain.models import Booking, BookingStatus, Provider, Service
from ..domain.time_grid import (
    Interval,
    format_time_of_day,
    local_datetime,
    parse_date,
    parse_time_of_day,
    require_ordered,
)
from .availability import AvailabilityService, resolve_provider_id

logger = logging.getLogger(__name__)

PAY_LATER = "PAY_LATER"


def generate_booking_ref() -> str:
    """Generate a unique external booking reference."""
    return f"BK-{uuid.uuid4().hex[:10].upper()}"


def _ensure_movable(booking: Booking) -> None:
    if booking.status is BookingStatus.CANCELLED or booking.deleted_at is not None:
        raise AlreadyCancelled(booking.id)
    if booking.status not in (BookingStatus.REQUESTED, BookingStatus.CONFIRMED):
        raise InvalidTransition(
            booking.status.value,
            booking.status.value,
            f"Booking {booking.id} is {booking.status.value} and cannot be moved"
        )


class SlotReservationService:
    """
    Validates and commits bookings so that no two active bookings of a
    provider overlap.
    """

    def __init__(
        self,
        availability: AvailabilityService,
        settings: ReservationConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        ref_factory: Callable[[], str] = generate_booking_ref,
    ) -> None:
        self._availability = availability
        self._store = availability.store
        self._settings = settings or ReservationConfig()
        self._sleep = sleep
        self._ref_factory = ref_factory

    def request_booking(
        self,
        *,
        service_id: int,
        client_id: int,
        date: "date | str",
        start_time: str,
        end_time: Optional[str] = None,
        provider_id: Optional[int] = None,
        group_count: Optional[int] = None,
        notes: Optional[str] = None,
        payment_option: Optional[str] = None,
    ) -> Booking:
        """
        Book a slot.

        Returns:
            The confirmed booking

        Raises:
            InvalidTimeFormat / InvalidInterval: Malformed input (before any query)
            ServiceNotFound / ClientNotFound / ProviderNotFound: Unknown records
            SlotTooShort: Candidate shorter than the service duration
            SlotUnavailable: Closed hours, exception block, conflicting booking,
                client daily limit or booking window
        """
        day = parse_date(date)
        start_minutes = parse_time_of_day(start_time)
        if end_time is not None:
            require_ordered(start_minutes, parse_time_of_day(end_time))
        if group_count is not None and group_count < 1:
            raise ValueError("group_count must be at least 1")

        service = self._availability.get_bookable_service(service_id)
        client = self._store.get_client(client_id)
        if client is None or not client.is_active:
            raise ClientNotFound(client_id)
        provider = self._availability.get_provider(resolve_provider_id(service, provider_id))

        start_time = format_time_of_day(start_minutes)
        if end_time is None:
            end_time = format_time_of_day(
                Interval(start_minutes, start_minutes + service.duration_minutes).end
            )
        else:
            end_time = format_time_of_day(parse_time_of_day(end_time))

        # Optimistic pre-check against a possibly stale view
        self._availability.check_slot(
            service=service,
            provider=provider,
            day=day,
            start_time=start_time,
            end_time=end_time,
            seats=group_count or 1
        )

        candidate = Booking(
            date=day,
            start_time=start_time,
            end_time=end_time,
            service_id=service.id,
            client_id=client.id,
            provider_id=provider.id,
            status=BookingStatus.REQUESTED,
            notes=notes,
            group_count=group_count,
            payment_option=payment_option,
            payment_status="PENDING" if payment_option == PAY_LATER else "UNPAID",
            payment_amount=service.price,
        )

        return self._with_retries(
            lambda: self._commit(candidate, service), provider.id, day, start_time
        )

    def _with_retries(
        self,
        commit: Callable[[], Booking],
        provider_id: int,
        day: date,
        start_time: str
    ) -> Booking:
        """Run ``commit`` until it wins against concurrent writers or attempts run out."""
        attempts = self._settings.max_attempts
        for attempt in range(attempts):
            try:
                return commit()
            except ConcurrencyConflict:
                if attempt + 1 >= attempts:
                    break
                delay = self._settings.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Concurrency conflict booking provider %s on %s %s (attempt %s/%s), retrying in %.2fs",
                    provider_id, day, start_time, attempt + 1, attempts, delay
                )
                self._sleep(delay)

        logger.warning(
            "Giving up on provider %s %s %s after %s conflicting attempts",
            provider_id, day, start_time, attempts
        )
        raise SlotUnavailable(
            SlotUnavailableReason.BOOKING_CONFLICT,
            "The slot was taken by a concurrent booking; refresh availability and try again"
        )

    def _commit(self, candidate: Booking, service: Service) -> Booking:
        """Re-validate against live data and insert inside one reservation scope."""
        provider = self._availability.get_provider(candidate.provider_id)

        with self._store.reserve(provider.id, candidate.date) as txn:
            live = txn.active_bookings()

            try:
                self._check_client_limit(txn.client_booking_count(candidate.client_id), service)
                self._availability.check_slot(
                    service=service,
                    provider=provider,
                    day=candidate.date,
                    start_time=candidate.start_time,
                    end_time=candidate.end_time,
                    seats=candidate.seats,
                    bookings=live
                )
            except SlotUnavailable as exc:
                logger.warning(
                    "Rejected booking for client %s with provider %s on %s %s: %s",
                    candidate.client_id, provider.id, candidate.date,
                    candidate.interval, exc.reason.value
                )
                raise

            now = self._availability.now()
            confirmed = transition(candidate, BookingStatus.CONFIRMED, at=now)
            stored = txn.insert_booking(
                self._with_creation_fields(confirmed, now)
            )

        logger.info(
            "Confirmed booking %s (%s) for client %s with provider %s on %s %s",
            stored.id, stored.booking_ref, stored.client_id,
            stored.provider_id, stored.date, stored.interval
        )
        return stored

    def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        """
        Cancel a requested or confirmed booking.

        Raises:
            BookingNotFound: If the booking does not exist
            AlreadyCancelled: If it was cancelled before
        """
        now = self._availability.now()
        cancelled = self._store.update_booking(
            booking_id,
            lambda booking: transition(booking, BookingStatus.CANCELLED, at=now, reason=reason)
        )
        logger.info("Cancelled booking %s (%s)", cancelled.id, reason or "no reason given")
        return cancelled

    def reschedule_booking(
        self,
        booking_id: int,
        *,
        date: "date | str",
        start_time: str,
        end_time: Optional[str] = None,
    ) -> Booking:
        """
        Move an active booking to another interval, keeping its id and reference.

        The booking's own current interval never conflicts with the new one.
        Without an ``end_time`` the booking keeps its length.

        Raises:
            InvalidTimeFormat / InvalidInterval: Malformed input (before any query)
            BookingNotFound: If the booking does not exist
            AlreadyCancelled: If the booking was cancelled
            InvalidTransition: If the booking was rejected or completed
            SlotTooShort / SlotUnavailable: As for ``request_booking``
        """
        day = parse_date(date)
        start_minutes = parse_time_of_day(start_time)
        if end_time is not None:
            require_ordered(start_minutes, parse_time_of_day(end_time))

        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        _ensure_movable(booking)

        service = self._availability.get_bookable_service(booking.service_id)
        provider = self._provider_of(booking)

        start_time = format_time_of_day(start_minutes)
        if end_time is None:
            end_time = format_time_of_day(
                Interval(start_minutes, start_minutes + booking.interval.duration_minutes()).end
            )
        else:
            end_time = format_time_of_day(parse_time_of_day(end_time))

        self._availability.check_slot(
            service=service,
            provider=provider,
            day=day,
            start_time=start_time,
            end_time=end_time,
            seats=booking.seats,
            bookings=[
                b for b in self._store.list_active_bookings(provider.id, day) if b.id != booking.id
            ]
        )

        return self._with_retries(
            lambda: self._commit_move(booking, service, provider, day, start_time, end_time),
            provider.id, day, start_time
        )

    def _commit_move(
        self,
        booking: Booking,
        service: Service,
        provider: Provider,
        day: date,
        start_time: str,
        end_time: str
    ) -> Booking:
        """Re-validate the new interval against live data and move the booking."""
        with self._store.reserve(provider.id, day) as txn:
            live = [b for b in txn.active_bookings() if b.id != booking.id]

            try:
                if day != booking.date:
                    self._check_client_limit(txn.client_booking_count(booking.client_id), service)
                self._availability.check_slot(
                    service=service,
                    provider=provider,
                    day=day,
                    start_time=start_time,
                    end_time=end_time,
                    seats=booking.seats,
                    bookings=live
                )
            except SlotUnavailable as exc:
                logger.warning(
                    "Rejected move of booking %s to %s %s-%s: %s",
                    booking.id, day, start_time, end_time, exc.reason.value
                )
                raise

            now = self._availability.now()

            def _move(current: Booking) -> Booking:
                _ensure_movable(current)
                return replace(
                    current, date=day, start_time=start_time, end_time=end_time, updated_at=now
                )

            moved = txn.update_booking(booking.id, _move)

        logger.info(
            "Rescheduled booking %s (%s) from %s %s to %s %s",
            moved.id, moved.booking_ref, booking.date, booking.interval,
            moved.date, moved.interval
        )
        return moved

    def complete_booking(self, booking_id: int) -> Booking:
        """
        Mark a confirmed booking completed once its appointment has ended.

        Raises:
            BookingNotFound: If the booking does not exist
            InvalidTransition: If the booking is not confirmed or has not ended
        """
        now = self._availability.now()

        def _complete(booking: Booking) -> Booking:
            provider = self._provider_of(booking)
            ends_at = local_datetime(booking.date, booking.interval.end, provider.timezone)
            if now < ends_at:
                raise InvalidTransition(
                    booking.status.value,
                    BookingStatus.COMPLETED.value,
                    f"Booking {booking.id} ends at {ends_at.to_iso8601_string()}"
                )
            return transition(booking, BookingStatus.COMPLETED, at=now)

        completed = self._store.update_booking(booking_id, _complete)
        logger.info("Completed booking %s", completed.id)
        return completed

    def _provider_of(self, booking: Booking) -> Provider:
        """Provider a stored booking belongs to, falling back to its service's owner."""
        provider_id = booking.provider_id
        if provider_id is None:
            service = self._store.get_service(booking.service_id)
            provider_id = service.provider_id if service else None
        return self._availability.get_provider(provider_id)

    @staticmethod
    def _check_client_limit(existing: int, service: Service) -> None:
        limit = service.max_bookings_per_client_per_day
        if limit is not None and existing >= limit:
            raise SlotUnavailable(
                SlotUnavailableReason.CLIENT_DAILY_LIMIT,
                f"Client already holds {existing} booking(s) that day (limit {limit})"
            )

    def _with_creation_fields(self, booking: Booking, now) -> Booking:
        return replace(
            booking,
            booking_ref=booking.booking_ref or self._ref_factory(),
            created_at=now,
            updated_at=now,
        )

