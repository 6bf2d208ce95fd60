"""
Tests for slot enumeration and candidate validation.
"""

from datetime import date

import pytest

from bookingengine.domain.exceptions import (
    InvalidInterval,
    SlotTooShort,
    SlotUnavailable,
    SlotUnavailableReason,
)
from bookingengine.domain.models import Booking, BookingStatus, Service
from bookingengine.domain.overlay import DaySchedule
from bookingengine.domain.slot_calculator import SlotCalculator
from bookingengine.domain.time_grid import Interval

MONDAY = date(2024, 11, 25)


def _iv(start: str, end: str) -> Interval:
    return Interval.from_strings(start, end)


def _schedule(*intervals: Interval, blocked=None, closed_all_day=False) -> DaySchedule:
    return DaySchedule(
        date=MONDAY,
        recurring=list(intervals),
        open=list(intervals),
        blocked=blocked or [],
        closed_all_day=closed_all_day
    )


def _booking(start: str, end: str, booking_id: int = 1, **kwargs) -> Booking:
    values = dict(
        date=MONDAY,
        start_time=start,
        end_time=end,
        service_id=1,
        client_id=1,
        provider_id=1,
        status=BookingStatus.CONFIRMED,
        id=booking_id,
    )
    values.update(kwargs)
    return Booking(**values)


CONSULTATION = Service(id=1, name="Consultation", duration_minutes=30)


class TestSlotEnumeration:
    """Tests for SlotCalculator.enumerate_slots."""

    def test_steps_by_granularity(self):
        """Starts advance by the granularity until the service no longer fits."""
        calculator = SlotCalculator(granularity_minutes=30)

        slots = calculator.enumerate_slots(_schedule(_iv("09:00", "11:00")), [], CONSULTATION, 1)

        assert [s.start_time for s in slots] == ["09:00", "09:30", "10:00", "10:30"]
        assert all(s.interval.duration_minutes() == 30 for s in slots)

    def test_bookings_are_skipped(self):
        calculator = SlotCalculator(granularity_minutes=30)
        bookings = [_booking("10:00", "10:30")]

        slots = calculator.enumerate_slots(_schedule(_iv("09:00", "11:00")), bookings, CONSULTATION, 1)

        assert [s.start_time for s in slots] == ["09:00", "09:30", "10:30"]

    def test_cancelled_bookings_free_their_time(self):
        calculator = SlotCalculator(granularity_minutes=30)
        bookings = [
            _booking("10:00", "10:30", status=BookingStatus.CANCELLED),
            _booking("10:30", "11:00", booking_id=2, status="REJECTED"),
        ]

        slots = calculator.enumerate_slots(_schedule(_iv("09:00", "11:00")), bookings, CONSULTATION, 1)

        assert len(slots) == 4

    def test_short_free_interval_discarded(self):
        """A 20-minute gap cannot host a 30-minute service."""
        calculator = SlotCalculator()

        slots = calculator.enumerate_slots(
            _schedule(_iv("09:00", "09:20"), _iv("10:00", "10:30")), [], CONSULTATION, 1
        )

        assert [str(s.interval) for s in slots] == ["10:00-10:30"]

    def test_earliest_start_aligns_to_grid(self):
        """Candidates before the earliest start are dropped; the rest stay on the grid."""
        calculator = SlotCalculator(granularity_minutes=15)

        slots = calculator.enumerate_slots(
            _schedule(_iv("09:00", "10:30")), [], CONSULTATION, 1, earliest_start=9 * 60 + 20
        )

        assert [s.start_time for s in slots] == ["09:30", "09:45", "10:00"]

    def test_buffer_keeps_gap_after_bookings(self):
        """A 15-minute buffer is kept after existing bookings and after the candidate."""
        calculator = SlotCalculator(granularity_minutes=15)
        massage = Service(id=1, name="Massage", duration_minutes=60, buffer_minutes=15)
        bookings = [_booking("10:00", "11:00")]

        slots = calculator.enumerate_slots(_schedule(_iv("09:00", "13:00")), bookings, massage, 1)

        assert [s.start_time for s in slots] == ["11:15", "11:30", "11:45"]

    def test_every_enumerated_slot_validates(self):
        """Enumeration and validation agree."""
        calculator = SlotCalculator(granularity_minutes=5)
        service = Service(id=1, name="Massage", duration_minutes=45, buffer_minutes=10)
        schedule = _schedule(_iv("08:00", "12:00"), _iv("13:00", "17:30"))
        bookings = [_booking("09:10", "09:55"), _booking("14:00", "14:45", booking_id=2)]

        slots = calculator.enumerate_slots(schedule, bookings, service, 1)

        assert slots
        for slot in slots:
            result = calculator.validate(schedule, bookings, service, 1, slot.start_time, slot.end_time)
            assert result.interval == slot.interval

    def test_group_slot_stays_open_until_full(self):
        """A group slot is offered while seats remain."""
        calculator = SlotCalculator(granularity_minutes=60)
        pilates = Service(id=3, name="Pilates", duration_minutes=60, group_size=3)
        schedule = _schedule(_iv("09:00", "11:00"))

        partly = [_booking("09:00", "10:00", service_id=3, group_count=2)]
        full = partly + [_booking("09:00", "10:00", booking_id=2, service_id=3)]

        assert [s.start_time for s in calculator.enumerate_slots(schedule, partly, pilates, 1)] == ["09:00", "10:00"]
        assert [s.start_time for s in calculator.enumerate_slots(schedule, full, pilates, 1)] == ["10:00"]

    def test_blackout_periods_are_skipped(self):
        calculator = SlotCalculator(granularity_minutes=30)
        service = Service(
            id=1, name="Consultation", duration_minutes=30, blackout_periods=[_iv("10:00", "10:30")]
        )

        slots = calculator.enumerate_slots(_schedule(_iv("09:00", "12:00")), [], service, 1)

        assert [s.start_time for s in slots] == ["09:00", "09:30", "10:30", "11:00", "11:30"]

    def test_every_enumerated_slot_validates_around_blackouts(self):
        calculator = SlotCalculator(granularity_minutes=5)
        service = Service(
            id=1, name="Massage", duration_minutes=45, buffer_minutes=10,
            blackout_periods=[_iv("10:00", "10:20"), _iv("15:40", "16:10")]
        )
        schedule = _schedule(_iv("08:00", "12:00"), _iv("13:00", "17:30"))
        bookings = [_booking("14:00", "14:45")]

        slots = calculator.enumerate_slots(schedule, bookings, service, 1)

        assert slots
        for slot in slots:
            assert calculator.validate(schedule, bookings, service, 1, slot.start_time, slot.end_time)

    def test_slot_display(self):
        calculator = SlotCalculator(granularity_minutes=30)

        slot = calculator.enumerate_slots(_schedule(_iv("13:00", "13:30")), [], CONSULTATION, 1)[0]

        assert slot.label == "Afternoon"
        assert slot.format_display() == "Monday, 2024-11-25 | 13:00 - 13:30 (30 min)"


class TestSlotValidation:
    """Tests for SlotCalculator.validate."""

    def test_available(self):
        calculator = SlotCalculator()

        result = calculator.validate(_schedule(_iv("09:00", "17:00")), [], CONSULTATION, 7, "13:00")

        assert result.interval == _iv("13:00", "13:30")
        assert result.provider_id == 7

    def test_inverted_interval(self):
        with pytest.raises(InvalidInterval):
            SlotCalculator().validate(_schedule(_iv("09:00", "17:00")), [], CONSULTATION, 1, "10:00", "09:30")

    def test_too_short(self):
        with pytest.raises(SlotTooShort) as exc_info:
            SlotCalculator().validate(_schedule(_iv("09:00", "17:00")), [], CONSULTATION, 1, "10:00", "10:15")

        assert exc_info.value.required_minutes == 30
        assert exc_info.value.actual_minutes == 15

    def test_outside_hours(self):
        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(_schedule(_iv("09:00", "12:00")), [], CONSULTATION, 1, "11:45")

        assert exc_info.value.reason is SlotUnavailableReason.OUTSIDE_HOURS

    def test_exception_blocked(self):
        """Time closed by an exception reports exception-blocked, not outside-hours."""
        schedule = _schedule(_iv("09:00", "10:00"), _iv("11:00", "12:00"), blocked=[_iv("10:00", "11:00")])

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(schedule, [], CONSULTATION, 1, "10:15")

        assert exc_info.value.reason is SlotUnavailableReason.EXCEPTION_BLOCKED

    def test_closed_all_day(self):
        schedule = _schedule(blocked=[Interval.whole_day()], closed_all_day=True)

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(schedule, [], CONSULTATION, 1, "09:00")

        assert exc_info.value.reason is SlotUnavailableReason.EXCEPTION_BLOCKED

    def test_booking_conflict_names_booking(self):
        bookings = [_booking("13:15", "13:45", booking_id=42)]

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(_schedule(_iv("09:00", "17:00")), bookings, CONSULTATION, 1, "13:00")

        assert exc_info.value.reason is SlotUnavailableReason.BOOKING_CONFLICT
        assert exc_info.value.conflicting_booking_id == 42
        assert exc_info.value.to_dict()["conflicting_booking_id"] == 42

    def test_back_to_back_is_fine(self):
        bookings = [_booking("12:30", "13:00")]

        result = SlotCalculator().validate(_schedule(_iv("09:00", "17:00")), bookings, CONSULTATION, 1, "13:00")

        assert result.interval.start == 13 * 60

    def test_buffer_conflict(self):
        """The buffer after an existing booking is not bookable."""
        service = Service(id=1, name="Massage", duration_minutes=30, buffer_minutes=15)
        bookings = [_booking("12:30", "13:00")]

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(_schedule(_iv("09:00", "17:00")), bookings, service, 1, "13:00")

        assert exc_info.value.reason is SlotUnavailableReason.BOOKING_CONFLICT

    def test_group_seats_exceeding_capacity(self):
        pilates = Service(id=3, name="Pilates", duration_minutes=60, group_size=4)
        bookings = [_booking("09:00", "10:00", service_id=3, group_count=3)]
        schedule = _schedule(_iv("09:00", "12:00"))
        calculator = SlotCalculator()

        assert calculator.validate(schedule, bookings, pilates, 1, "09:00", seats=1)
        with pytest.raises(SlotUnavailable):
            calculator.validate(schedule, bookings, pilates, 1, "09:00", seats=2)
        with pytest.raises(SlotUnavailable):
            calculator.validate(schedule, [], pilates, 1, "09:00", seats=5)

    def test_group_booking_shifted_start_conflicts(self):
        """Joining a group requires the exact same interval."""
        pilates = Service(id=3, name="Pilates", duration_minutes=60, group_size=4)
        bookings = [_booking("09:00", "10:00", service_id=3)]

        with pytest.raises(SlotUnavailable):
            SlotCalculator().validate(_schedule(_iv("09:00", "12:00")), bookings, pilates, 1, "09:30")

    def test_blackout_rejected(self):
        service = Service(
            id=1, name="Consultation", duration_minutes=30, blackout_periods=[_iv("10:00", "10:30")]
        )
        schedule = _schedule(_iv("09:00", "12:00"))

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(schedule, [], service, 1, "09:45")

        assert exc_info.value.reason is SlotUnavailableReason.SERVICE_BLACKOUT
        assert SlotCalculator().validate(schedule, [], service, 1, "10:30")

    def test_buffer_may_not_reach_into_blackout(self):
        massage = Service(
            id=2, name="Massage", duration_minutes=60, buffer_minutes=15,
            blackout_periods=[_iv("11:00", "12:00")]
        )
        schedule = _schedule(_iv("09:00", "13:00"))

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(schedule, [], massage, 1, "09:50")

        assert exc_info.value.reason is SlotUnavailableReason.SERVICE_BLACKOUT
        assert SlotCalculator().validate(schedule, [], massage, 1, "09:45")

    def test_outside_hours_wins_over_blackout(self):
        service = Service(
            id=1, name="Consultation", duration_minutes=30, blackout_periods=[_iv("18:00", "19:00")]
        )

        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(_schedule(_iv("09:00", "12:00")), [], service, 1, "18:00")

        assert exc_info.value.reason is SlotUnavailableReason.OUTSIDE_HOURS

    def test_single_seat_service_rejects_extra_seats(self):
        """Only group services take more than one seat per booking."""
        schedule = _schedule(_iv("09:00", "12:00"))

        assert SlotCalculator().validate(schedule, [], CONSULTATION, 1, "09:00", seats=1)
        with pytest.raises(SlotUnavailable) as exc_info:
            SlotCalculator().validate(schedule, [], CONSULTATION, 1, "09:00", seats=7)

        assert exc_info.value.reason is SlotUnavailableReason.BOOKING_CONFLICT
