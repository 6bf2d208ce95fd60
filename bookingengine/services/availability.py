"""
Application service answering availability queries.

The service fetches schedule rows through a store adapter and delegates the
resolution to the domain: ``RecurringAvailabilityResolver`` for the weekly
pattern, ``ExceptionOverlay`` for date overrides and ``SlotCalculator`` for
bookings. Everything here is read-only and idempotent.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, List, Optional

import pendulum
from pendulum import DateTime

from ..config import SlotsConfig
from ..domain.exceptions import (
    InvalidInterval,
    ProviderNotFound,
    ProviderResolutionError,
    ServiceNotFound,
    SlotUnavailable,
    SlotUnavailableReason,
)
from ..domain.models import Available, Booking, OpenSlot, Provider, Service
from ..domain.overlay import DaySchedule, ExceptionOverlay
from ..domain.recurring import RecurringAvailabilityResolver
from ..domain.slot_calculator import SlotCalculator
from ..domain.time_grid import local_datetime, parse_time_of_day, weekday_of
from .ports import ScheduleStoreProtocol

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]


def utc_now() -> DateTime:
    return pendulum.now("UTC")


def resolve_provider_id(service: Service, provider_id: Optional[int] = None) -> int:
    """
    Determine which provider a service is booked with.

    Falls back to ``Service.provider_id``; an explicit provider must match it.

    Raises:
        ProviderResolutionError: If no provider can be determined or they differ
    """
    if service.provider_id is None:
        if provider_id is None:
            raise ProviderResolutionError(
                f"Service {service.id} is not tied to a provider; a provider id is required"
            )
        return provider_id

    if provider_id is not None and provider_id != service.provider_id:
        raise ProviderResolutionError(
            f"Service {service.id} belongs to provider {service.provider_id}, not {provider_id}"
        )

    return service.provider_id


class AvailabilityService:
    """
    Orchestrates schedule retrieval and slot calculation.

    Dependency inversion toward a protocol makes it easy to plug in the
    SQLAlchemy store or the in-memory one in tests.
    """

    def __init__(
        self,
        store: ScheduleStoreProtocol,
        slot_calculator: SlotCalculator | None = None,
        *,
        settings: SlotsConfig | None = None,
        resolver: RecurringAvailabilityResolver | None = None,
        overlay: ExceptionOverlay | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._settings = settings or SlotsConfig()
        self._calculator = slot_calculator or SlotCalculator(
            granularity_minutes=self._settings.granularity_minutes
        )
        self._resolver = resolver or RecurringAvailabilityResolver()
        self._overlay = overlay or ExceptionOverlay()
        self._clock = clock

    def now(self) -> DateTime:
        """Current moment from the injected clock."""
        return self._clock()

    @property
    def calculator(self) -> SlotCalculator:
        return self._calculator

    @property
    def store(self) -> ScheduleStoreProtocol:
        return self._store

    def get_provider(self, provider_id: int) -> Provider:
        provider = self._store.get_provider(provider_id)
        if provider is None:
            raise ProviderNotFound(provider_id)
        return provider

    def get_bookable_service(self, service_id: int) -> Service:
        """Return the service, treating archived or deleted services as missing."""
        service = self._store.get_service(service_id)
        if service is None or not service.is_bookable:
            raise ServiceNotFound(service_id)
        return service

    def day_schedule(self, provider: "Provider | int", day: date) -> DaySchedule:
        """Resolve recurring availability, breaks and exceptions for one day."""
        if not isinstance(provider, Provider):
            provider = self.get_provider(provider)

        weekday = weekday_of(day, provider.timezone)
        recurring = self._resolver.resolve(
            self._store.list_availabilities(provider.id, weekday),
            self._store.list_breaks(provider.id, weekday),
            weekday
        )
        schedule = self._overlay.apply(
            day,
            recurring,
            self._store.list_exceptions(provider.id, day)
        )
        logger.debug(
            "Provider %s on %s: recurring=%s open=%s",
            provider.id, day,
            [str(i) for i in schedule.recurring],
            [str(i) for i in schedule.open]
        )
        return schedule

    def get_open_slots(
        self,
        *,
        provider_id: int,
        service_id: int,
        start_date: date,
        end_date: date,
        granularity_minutes: Optional[int] = None,
    ) -> List[OpenSlot]:
        """
        List bookable slots for a service over an inclusive date range.

        Days before today or beyond the booking horizon yield nothing; on the
        first bookable day slots start no earlier than now plus the minimum
        advance notice.
        """
        if end_date < start_date:
            raise InvalidInterval(f"End date {end_date} is before start date {start_date}")

        service = self.get_bookable_service(service_id)
        provider = self.get_provider(resolve_provider_id(service, provider_id))

        slots: List[OpenSlot] = []
        current = start_date

        while current <= end_date:
            earliest = self.earliest_start(provider, current)
            if earliest is not None:
                slots.extend(
                    self._calculator.enumerate_slots(
                        self.day_schedule(provider, current),
                        self._store.list_active_bookings(provider.id, current),
                        service,
                        provider.id,
                        granularity_minutes=granularity_minutes,
                        earliest_start=earliest
                    )
                )
            current += timedelta(days=1)

        return slots

    def find_next_available(
        self,
        *,
        provider_id: int,
        service_id: int,
        from_date: date,
        search_days: Optional[int] = None,
    ) -> Optional[OpenSlot]:
        """Return the first open slot on or after ``from_date``, or None."""
        days = search_days or self._settings.max_days_in_future
        current = from_date

        for _ in range(days):
            slots = self.get_open_slots(
                provider_id=provider_id,
                service_id=service_id,
                start_date=current,
                end_date=current
            )
            if slots:
                return slots[0]
            current += timedelta(days=1)

        return None

    def check_slot(
        self,
        *,
        service: Service,
        provider: Provider,
        day: date,
        start_time: str,
        end_time: Optional[str] = None,
        seats: int = 1,
        bookings: Optional[List[Booking]] = None,
    ) -> Available:
        """
        Validate one candidate against the booking window, the day's schedule
        and (unless given) the provider's current bookings.
        """
        self.ensure_within_window(provider, day, parse_time_of_day(start_time))
        if bookings is None:
            bookings = self._store.list_active_bookings(provider.id, day)

        return self._calculator.validate(
            self.day_schedule(provider, day),
            bookings,
            service,
            provider.id,
            start_time,
            end_time,
            seats=seats
        )

    def earliest_start(self, provider: Provider, day: date) -> Optional[int]:
        """
        First bookable minute of ``day`` under the booking window.

        Returns None when the whole day is outside the window.
        """
        local_now = self._clock().in_timezone(provider.timezone)
        horizon = local_now.date() + timedelta(days=self._settings.max_days_in_future)
        threshold = local_now.add(minutes=self._settings.min_advance_minutes)

        if day > horizon or day < threshold.date():
            return None
        if day > threshold.date():
            return 0

        minutes = threshold.hour * 60 + threshold.minute
        if threshold.second or threshold.microsecond:
            minutes += 1
        return minutes

    def ensure_within_window(self, provider: Provider, day: date, start_minutes: int) -> None:
        """
        Raises:
            SlotUnavailable: If the start is too soon or beyond the horizon
        """
        local_now = self._clock().in_timezone(provider.timezone)
        horizon = local_now.date() + timedelta(days=self._settings.max_days_in_future)

        if day > horizon:
            raise SlotUnavailable(
                SlotUnavailableReason.BEYOND_HORIZON,
                f"{day} is more than {self._settings.max_days_in_future} days ahead"
            )

        threshold = local_now.add(minutes=self._settings.min_advance_minutes)
        if local_datetime(day, start_minutes, provider.timezone) < threshold:
            raise SlotUnavailable(
                SlotUnavailableReason.ADVANCE_NOTICE,
                f"Bookings need at least {self._settings.min_advance_minutes} minutes notice"
            )
