"""
Interval arithmetic over sorted lists of ``Interval``.

Every function returns a sorted list of pairwise non-overlapping intervals.
Adjacent intervals (``a.end == b.start``) are merged.
"""

from typing import Iterable, List

from .time_grid import Interval


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Merge overlapping or adjacent intervals.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
    """
    sorted_intervals = sorted(intervals)
    if not sorted_intervals:
        return []

    merged: List[Interval] = [sorted_intervals[0]]

    for current in sorted_intervals[1:]:
        last = merged[-1]

        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)

    return merged


def subtract_intervals(base: Iterable[Interval], cuts: Iterable[Interval]) -> List[Interval]:
    """
    Remove every ``cut`` from ``base``.

    Example:
    Base: [09:00-17:00]
    Cuts: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
    """
    merged_cuts = merge_intervals(cuts)
    result: List[Interval] = []

    for block in merge_intervals(base):
        current_start = block.start

        for cut in merged_cuts:
            if cut.end <= current_start:
                continue
            if cut.start >= block.end:
                break

            if current_start < cut.start:
                result.append(Interval(current_start, cut.start))

            current_start = max(current_start, cut.end)
            if current_start >= block.end:
                break

        if current_start < block.end:
            result.append(Interval(current_start, block.end))

    return result


def union_intervals(*groups: Iterable[Interval]) -> List[Interval]:
    """Union any number of interval lists."""
    combined: List[Interval] = []
    for group in groups:
        combined.extend(group)
    return merge_intervals(combined)


def intersect_intervals(first: Iterable[Interval], second: Iterable[Interval]) -> List[Interval]:
    """Return the periods covered by both lists."""
    left = merge_intervals(first)
    right = merge_intervals(second)
    result: List[Interval] = []
    i = j = 0

    while i < len(left) and j < len(right):
        overlap = left[i].intersect(right[j])
        if overlap:
            result.append(overlap)
        if left[i].end < right[j].end:
            i += 1
        else:
            j += 1

    return result


def covers(intervals: Iterable[Interval], candidate: Interval) -> bool:
    """True if ``candidate`` lies entirely inside one merged interval."""
    return any(block.contains(candidate) for block in merge_intervals(intervals))


def total_minutes(intervals: Iterable[Interval]) -> int:
    return sum(block.duration_minutes() for block in merge_intervals(intervals))
