"""
Core business logic for finding bookable slots and validating candidates.

This is the heart of the application - pure domain logic without any
external dependencies (no database, no I/O). Enumeration and validation
share the same predicates, so every enumerated slot validates.
"""

from typing import Iterable, List, Optional

from .exceptions import SlotTooShort, SlotUnavailable, SlotUnavailableReason
from .intervals import covers, subtract_intervals
from .models import Available, Booking, OpenSlot, Service
from .overlay import DaySchedule
from .time_grid import MINUTES_PER_DAY, Interval, parse_time_of_day, require_ordered


class SlotCalculator:
    """
    Checks a provider's resolved day against existing bookings.

    Algorithm (enumeration):
    1. Keep active bookings for the day
    2. Subtract each booking (padded by the service buffer) and the
       service's blackout periods from the open set
    3. Walk every free interval in ``granularity_minutes`` steps
    4. Emit each start whose padded slot fits and causes no conflict
    """

    def __init__(self, granularity_minutes: int = 15):
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be greater than zero")
        self.granularity_minutes = granularity_minutes

    def free_intervals(
        self,
        schedule: DaySchedule,
        bookings: Iterable[Booking],
        service: Service
    ) -> List[Interval]:
        """
        Open intervals left after removing active bookings and the service's
        blackout periods.

        Bookings of the same group service are not subtracted because their
        slot may still have seats left; candidates are checked individually.
        """
        blocking = [
            self._pad(booking.interval, service.buffer_minutes)
            for booking in self._active(bookings, schedule)
            if not self._is_same_group(booking, service)
        ]
        blocking.extend(service.blackout_periods)
        return subtract_intervals(schedule.open, blocking)

    def enumerate_slots(
        self,
        schedule: DaySchedule,
        bookings: Iterable[Booking],
        service: Service,
        provider_id: int,
        granularity_minutes: Optional[int] = None,
        earliest_start: Optional[int] = None
    ) -> List[OpenSlot]:
        """
        Enumerate start-time candidates of the service's duration.

        Args:
            schedule: Resolved day (recurring + exceptions)
            bookings: Bookings of the provider for that day
            service: Service being booked
            provider_id: Provider the slots belong to
            granularity_minutes: Step between candidate starts (defaults to the calculator's)
            earliest_start: Drop candidates starting before this minute of the day

        Returns:
            Slots ordered by start time
        """
        step = granularity_minutes or self.granularity_minutes
        if step <= 0:
            raise ValueError("granularity_minutes must be greater than zero")

        active = self._active(bookings, schedule)
        needed = service.duration_minutes
        slots: List[OpenSlot] = []

        for block in self.free_intervals(schedule, active, service):
            # Discard intervals shorter than the service
            if block.duration_minutes() < needed:
                continue

            start = block.start
            if earliest_start is not None and start < earliest_start:
                steps = -(-(earliest_start - block.start) // step)
                start = block.start + steps * step

            while start + needed <= block.end:
                candidate = Interval(start, start + needed)
                padded = self._pad(candidate, service.buffer_minutes)

                if block.contains(padded) and self._find_conflict(candidate, active, service, 1) is None:
                    slots.append(
                        OpenSlot(
                            date=schedule.date,
                            interval=candidate,
                            provider_id=provider_id,
                            service_id=service.id
                        )
                    )

                start += step

        return slots

    def validate(
        self,
        schedule: DaySchedule,
        bookings: Iterable[Booking],
        service: Service,
        provider_id: int,
        start: "str | int",
        end: "str | int | None" = None,
        seats: int = 1
    ) -> Available:
        """
        Validate a single candidate interval.

        Raises:
            InvalidInterval: If the candidate is inverted or leaves the day
            SlotTooShort: If the candidate is shorter than the service
            SlotUnavailable: If it falls outside open hours, into an
                exception block or a service blackout, asks for more seats
                than the service holds, or hits an existing booking
        """
        start_minutes = self._to_minutes(start)
        end_minutes = (
            start_minutes + service.duration_minutes if end is None else self._to_minutes(end)
        )
        require_ordered(start_minutes, end_minutes)
        candidate = Interval(start_minutes, end_minutes)

        if candidate.duration_minutes() < service.duration_minutes:
            raise SlotTooShort(service.duration_minutes, candidate.duration_minutes())

        padded = self._pad(candidate, service.buffer_minutes)

        if not covers(schedule.open, padded):
            if schedule.closed_all_day or any(padded.overlaps(b) for b in schedule.blocked):
                raise SlotUnavailable(
                    SlotUnavailableReason.EXCEPTION_BLOCKED,
                    f"{candidate} on {schedule.date} is blocked by an availability exception"
                )
            raise SlotUnavailable(
                SlotUnavailableReason.OUTSIDE_HOURS,
                f"{candidate} on {schedule.date} is outside the provider's hours"
            )

        blackout = next((b for b in service.blackout_periods if padded.overlaps(b)), None)
        if blackout is not None:
            raise SlotUnavailable(
                SlotUnavailableReason.SERVICE_BLACKOUT,
                f"{candidate} overlaps the blackout period {blackout} of service {service.id}"
            )

        capacity = service.group_size if service.is_group else 1
        if seats > capacity:
            raise SlotUnavailable(
                SlotUnavailableReason.BOOKING_CONFLICT,
                f"{seats} seats exceed the capacity of {capacity} for service {service.id}"
            )

        conflict = self._find_conflict(candidate, self._active(bookings, schedule), service, seats)
        if conflict is not None:
            raise SlotUnavailable(
                SlotUnavailableReason.BOOKING_CONFLICT,
                f"{candidate} on {schedule.date} overlaps booking {conflict.id}",
                conflicting_booking_id=conflict.id
            )

        return Available(
            date=schedule.date,
            interval=candidate,
            provider_id=provider_id,
            service_id=service.id
        )

    def _find_conflict(
        self,
        candidate: Interval,
        active: List[Booking],
        service: Service,
        seats: int
    ) -> Optional[Booking]:
        """Return the booking that makes ``candidate`` unbookable, if any."""
        padded = self._pad(candidate, service.buffer_minutes)
        joined_seats = 0
        last_joined: Optional[Booking] = None

        for booking in active:
            if not padded.overlaps(self._pad(booking.interval, service.buffer_minutes)):
                continue

            if self._is_same_group(booking, service) and booking.interval == candidate:
                joined_seats += booking.seats
                last_joined = booking
                continue

            return booking

        if last_joined is not None and joined_seats + seats > service.group_size:
            return last_joined

        return None

    @staticmethod
    def _active(bookings: Iterable[Booking], schedule: DaySchedule) -> List[Booking]:
        return [b for b in bookings if b.is_active and b.date == schedule.date]

    @staticmethod
    def _is_same_group(booking: Booking, service: Service) -> bool:
        return service.is_group and booking.service_id == service.id

    @staticmethod
    def _pad(interval: Interval, buffer_minutes: int) -> Interval:
        """Extend an interval's end by the service buffer, clipped to the day."""
        if not buffer_minutes:
            return interval
        return Interval(interval.start, min(interval.end + buffer_minutes, MINUTES_PER_DAY))

    @staticmethod
    def _to_minutes(value: "str | int") -> int:
        if isinstance(value, int):
            return value
        return parse_time_of_day(value)
