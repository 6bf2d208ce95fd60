"""
Tests for time-of-day parsing and intervals.
"""

from datetime import date

import pendulum
import pytest

from bookingengine.domain.exceptions import InvalidInterval, InvalidTimeFormat
from bookingengine.domain.time_grid import (
    Interval,
    format_time_of_day,
    local_datetime,
    overlaps,
    parse_date,
    parse_time_of_day,
    weekday_of,
)


class TestParseTimeOfDay:
    """Tests for HH:MM parsing."""

    def test_parses_minutes_since_midnight(self):
        """Valid times map to minutes since midnight."""
        assert parse_time_of_day("00:00") == 0
        assert parse_time_of_day("09:30") == 570
        assert parse_time_of_day("23:59") == 1439

    def test_end_of_day_is_accepted(self):
        """24:00 closes a window at midnight."""
        assert parse_time_of_day("24:00") == 1440

    @pytest.mark.parametrize("value", ["9:00", "24:30", "12:60", "25:00", "noon", "", "12.30"])
    def test_rejects_malformed(self, value):
        """Anything but a two-digit 24-hour time is rejected."""
        with pytest.raises(InvalidTimeFormat):
            parse_time_of_day(value)

    def test_rejects_non_string(self):
        with pytest.raises(InvalidTimeFormat):
            parse_time_of_day(930)

    def test_format_round_trips(self):
        assert format_time_of_day(570) == "09:30"
        assert format_time_of_day(1440) == "24:00"


class TestInterval:
    """Tests for the half-open Interval."""

    def test_back_to_back_do_not_overlap(self):
        """Half-open intervals sharing an endpoint do not overlap."""
        first = Interval.from_strings("09:00", "10:00")
        second = Interval.from_strings("10:00", "11:00")

        assert not first.overlaps(second)
        assert not overlaps(540, 600, 600, 660)

    def test_partial_overlap(self):
        assert Interval(540, 600).overlaps(Interval(590, 620))

    def test_inverted_interval_rejected(self):
        """Start must be before end."""
        with pytest.raises(InvalidInterval):
            Interval.from_strings("10:00", "09:00")

    def test_empty_interval_rejected(self):
        with pytest.raises(InvalidInterval):
            Interval(600, 600)

    def test_start_at_end_of_day_rejected(self):
        """24:00 is only valid as an end."""
        with pytest.raises(InvalidInterval):
            Interval.from_strings("24:00", "24:00")

    def test_intersect(self):
        a = Interval.from_strings("09:00", "12:00")
        b = Interval.from_strings("11:00", "13:00")

        assert a.intersect(b) == Interval.from_strings("11:00", "12:00")
        assert a.intersect(Interval.from_strings("12:00", "13:00")) is None

    def test_contains_and_str(self):
        outer = Interval.from_strings("09:00", "17:00")

        assert outer.contains(Interval.from_strings("09:00", "09:30"))
        assert not outer.contains(Interval.from_strings("16:45", "17:15"))
        assert str(outer) == "09:00-17:00"
        assert outer.duration_minutes() == 480


class TestCalendarHelpers:
    """Tests for date parsing and timezone helpers."""

    def test_parse_date(self):
        assert parse_date("2024-11-25") == date(2024, 11, 25)
        assert parse_date(date(2024, 11, 25)) == date(2024, 11, 25)

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(InvalidTimeFormat):
            parse_date("25.11.2024")

    def test_weekday_is_monday_based(self):
        """2024-11-25 is a Monday."""
        assert weekday_of(date(2024, 11, 25), "America/New_York") == 0
        assert weekday_of(date(2024, 12, 1), "America/New_York") == 6

    def test_weekday_of_datetime_uses_provider_timezone(self):
        """A UTC moment early Tuesday is still Monday evening in New York."""
        moment = pendulum.datetime(2024, 11, 26, 2, 0, tz="UTC")

        assert weekday_of(moment, "America/New_York") == 0
        assert weekday_of(moment, "Europe/Berlin") == 1

    def test_local_datetime(self):
        """Minutes are applied in the provider's timezone."""
        moment = local_datetime(date(2024, 11, 25), 13 * 60, "America/New_York")

        assert moment.hour == 13
        assert moment.timezone_name == "America/New_York"
        assert moment.in_timezone("UTC").hour == 18

    def test_local_datetime_end_of_day(self):
        moment = local_datetime(date(2024, 11, 25), 1440, "UTC")

        assert moment.date() == date(2024, 11, 26)
        assert moment.hour == 0
