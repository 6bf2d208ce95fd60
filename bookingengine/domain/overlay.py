"""
Apply date-specific availability exceptions on top of the recurring schedule.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List

from .intervals import merge_intervals, subtract_intervals, union_intervals
from .models import AvailabilityException
from .time_grid import Interval

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DaySchedule:
    """
    Resolved schedule of one provider for one calendar day.

    ``recurring`` is the weekly resolution before exceptions, ``open`` the
    final bookable set and ``blocked`` the time closed by exceptions.
    """
    date: date
    recurring: List[Interval] = field(default_factory=list)
    open: List[Interval] = field(default_factory=list)
    blocked: List[Interval] = field(default_factory=list)
    closed_all_day: bool = False

    @property
    def is_open(self) -> bool:
        return bool(self.open)


class ExceptionOverlay:
    """
    Overlays ``AvailabilityException`` rows for a single date.

    Precedence:
    1. A full-day block clears the day (it also beats a full-day opening)
    2. A full-day opening replaces the recurring schedule with the whole day
    3. Partial blocks are subtracted
    4. Partial openings are added and merged
    """

    def apply(
        self,
        day: date,
        recurring: Iterable[Interval],
        exceptions: Iterable[AvailabilityException]
    ) -> DaySchedule:
        recurring_set = merge_intervals(recurring)
        todays = [e for e in exceptions if e.date == day]

        if not todays:
            return DaySchedule(date=day, recurring=recurring_set, open=list(recurring_set))

        full_day_blocks = [e for e in todays if e.is_full_day and not e.is_available]
        full_day_opens = [e for e in todays if e.is_full_day and e.is_available]
        partial_blocks = [e for e in todays if not e.is_full_day and not e.is_available]
        partial_opens = [e for e in todays if not e.is_full_day and e.is_available]

        if full_day_blocks:
            if full_day_opens:
                logger.debug("Full-day block and full-day opening on %s; block wins", day)
            return DaySchedule(
                date=day,
                recurring=recurring_set,
                open=[],
                blocked=[Interval.whole_day()],
                closed_all_day=True
            )

        working = [Interval.whole_day()] if full_day_opens else list(recurring_set)

        blocked = merge_intervals(e.interval for e in partial_blocks)
        working = subtract_intervals(working, blocked)
        working = union_intervals(working, (e.interval for e in partial_opens))

        return DaySchedule(
            date=day,
            recurring=recurring_set,
            open=working,
            blocked=blocked
        )
