"""Busy/free statistics over per-day work windows.

Per day, every event interval is clipped to the work window, then overlapping
or touching intervals are merged. Busy minutes, block count and the largest
free span are computed from the merged intervals.
"""

from __future__ import annotations

import datetime
import math
from collections.abc import Iterable, Sequence
from typing import Protocol

from ..calendar.lite_models import BusyBlock, BusyStats, DayWindow

Interval = tuple[datetime.datetime, datetime.datetime]


class TimedEvent(Protocol):
    """Anything with a start and end instant."""

    start_at: datetime.datetime
    end_at: datetime.datetime


def round_minutes(span: datetime.timedelta) -> int:
    """Whole minutes, rounding halves up."""
    return math.floor(span.total_seconds() / 60 + 0.5)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Merge overlapping or adjacent intervals."""
    merged: list[Interval] = []
    for start, end in sorted(intervals, key=lambda interval: interval[0]):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def collect_busy_intervals_by_day(
    events: Sequence[TimedEvent],
    windows: Sequence[DayWindow],
) -> list[tuple[DayWindow, list[Interval]]]:
    """Clip events to each day's window and merge them."""
    result = []
    for window in windows:
        clipped = []
        for event in events:
            start = max(event.start_at, window.window_start)
            end = min(event.end_at, window.window_end)
            if end > start:
                clipped.append((start, end))
        result.append((window, merge_intervals(clipped)))
    return result


def merge_busy_blocks(events: Sequence[TimedEvent], windows: Sequence[DayWindow]) -> list[BusyBlock]:
    """Merged busy intervals across all days, in day order."""
    return [
        BusyBlock(start_at=start, end_at=end)
        for _, merged in collect_busy_intervals_by_day(events, windows)
        for start, end in merged
    ]


def calculate_busy_stats(events: Sequence[TimedEvent], windows: Sequence[DayWindow]) -> BusyStats:
    """Busy minutes, merged block count and largest free span across all days.

    A day without events contributes its full window length as free time.
    """
    busy_minutes = 0
    blocks = 0
    largest_focus = 0

    for window, merged in collect_busy_intervals_by_day(events, windows):
        blocks += len(merged)
        busy_minutes += sum(round_minutes(end - start) for start, end in merged)

        if not merged:
            largest_focus = max(largest_focus, round_minutes(window.window_end - window.window_start))
            continue

        cursor = window.window_start
        for start, end in merged:
            if start > cursor:
                largest_focus = max(largest_focus, round_minutes(start - cursor))
            cursor = max(cursor, end)

        if window.window_end > cursor:
            largest_focus = max(largest_focus, round_minutes(window.window_end - cursor))

    return BusyStats(
        busy_minutes=busy_minutes,
        blocks=blocks,
        largest_focus_block_minutes=largest_focus,
    )
