"""
Resolve a provider's recurring weekly availability into open intervals.
"""

import logging
from datetime import date
from typing import Iterable, List

from .intervals import merge_intervals, subtract_intervals
from .models import Availability, Break, Provider
from .time_grid import Interval, weekday_of

logger = logging.getLogger(__name__)


class RecurringAvailabilityResolver:
    """
    Turns weekly ``Availability`` rows minus ``Break`` rows into open intervals.

    Algorithm:
    1. Keep the availability and break rows for the requested weekday
    2. Subtract every overlapping break from each availability window
       (a break in the middle splits the window in two)
    3. Merge the per-window results into one sorted list
    """

    def resolve(
        self,
        availabilities: Iterable[Availability],
        breaks: Iterable[Break],
        weekday: int
    ) -> List[Interval]:
        """
        Return the open intervals for one weekday.

        Args:
            availabilities: Availability rows (other weekdays are ignored)
            breaks: Break rows (other weekdays are ignored)
            weekday: 0=Monday .. 6=Sunday

        Returns:
            Sorted, non-overlapping open intervals
        """
        windows = [a.interval for a in availabilities if a.weekday == weekday]
        break_windows = [b.interval for b in breaks if b.weekday == weekday]

        if not windows:
            return []

        open_intervals: List[Interval] = []

        # Split shifts are resolved independently before merging
        for window in windows:
            overlapping = [b for b in break_windows if window.overlaps(b)]
            open_intervals.extend(subtract_intervals([window], overlapping))

        for break_window in break_windows:
            if not any(window.overlaps(break_window) for window in windows):
                logger.debug(
                    "Break %s on weekday %s lies outside every availability window",
                    break_window, weekday
                )

        return merge_intervals(open_intervals)

    def resolve_for_date(
        self,
        provider: Provider,
        day: date,
        availabilities: Iterable[Availability],
        breaks: Iterable[Break]
    ) -> List[Interval]:
        """Resolve the recurring schedule for a calendar day in the provider's timezone."""
        weekday = weekday_of(day, provider.timezone)
        return self.resolve(
            [a for a in availabilities if a.provider_id == provider.id],
            [b for b in breaks if b.provider_id == provider.id],
            weekday
        )
