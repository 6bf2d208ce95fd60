"""
Tests for interval list arithmetic.
"""

from bookingengine.domain.intervals import (
    covers,
    intersect_intervals,
    merge_intervals,
    subtract_intervals,
    total_minutes,
    union_intervals,
)
from bookingengine.domain.time_grid import Interval


def _iv(start: str, end: str) -> Interval:
    return Interval.from_strings(start, end)


def test_merge_sorts_and_joins_adjacent():
    """Overlapping and adjacent intervals collapse; output is sorted."""
    merged = merge_intervals([
        _iv("13:00", "14:00"),
        _iv("09:00", "10:00"),
        _iv("10:00", "11:00"),
        _iv("09:30", "10:30"),
    ])

    assert merged == [_iv("09:00", "11:00"), _iv("13:00", "14:00")]


def test_merge_is_idempotent():
    once = merge_intervals([_iv("09:00", "12:00"), _iv("11:00", "13:00"), _iv("15:00", "16:00")])

    assert merge_intervals(once) == once
    for left, right in zip(once, once[1:]):
        assert left.end < right.start


def test_subtract_splits_base():
    """Cuts in the middle split a block in two."""
    result = subtract_intervals(
        [_iv("09:00", "17:00")],
        [_iv("10:00", "11:00"), _iv("14:00", "15:00")]
    )

    assert result == [_iv("09:00", "10:00"), _iv("11:00", "14:00"), _iv("15:00", "17:00")]


def test_subtract_edges_and_full_cover():
    assert subtract_intervals([_iv("09:00", "12:00")], [_iv("08:00", "10:00")]) == [_iv("10:00", "12:00")]
    assert subtract_intervals([_iv("09:00", "12:00")], [_iv("11:00", "13:00")]) == [_iv("09:00", "11:00")]
    assert subtract_intervals([_iv("09:00", "12:00")], [_iv("08:00", "13:00")]) == []


def test_subtract_disjoint_cut_is_noop():
    base = [_iv("09:00", "12:00"), _iv("13:00", "17:00")]

    assert subtract_intervals(base, [_iv("12:00", "13:00")]) == base


def test_union_and_intersection():
    morning = [_iv("09:00", "12:00")]
    extra = [_iv("11:00", "14:00"), _iv("16:00", "17:00")]

    assert union_intervals(morning, extra) == [_iv("09:00", "14:00"), _iv("16:00", "17:00")]
    assert intersect_intervals(morning, extra) == [_iv("11:00", "12:00")]


def test_covers_requires_single_block():
    """A candidate spanning a gap is not covered."""
    open_set = [_iv("09:00", "12:00"), _iv("13:00", "17:00")]

    assert covers(open_set, _iv("11:30", "12:00"))
    assert not covers(open_set, _iv("11:30", "13:30"))
    assert total_minutes(open_set) == 420
