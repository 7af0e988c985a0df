"""
Interval Planner
================

Splits a date range into month-sized windows for the search endpoint,
which only answers for bounded date ranges.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date

from trial_harvest.core.schema import TimeWindow


def add_months(value: date, months: int) -> date:
    """
    Add calendar months to a date.

    The day is clamped to the last day of the target month, so
    January 31 plus one month is February 28 (or 29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class IntervalPlan:
    """
    A lazy, restartable sequence of contiguous windows covering ``[start, end]``.

    Every window starts where the previous one ended. Window boundaries are
    computed from ``start`` (not from the previous boundary) so a clamped
    month end never drifts the following windows.
    """

    start: date
    end: date
    months: int = 1

    def __post_init__(self) -> None:
        if self.months < 1:
            raise ValueError(f"Window period must be at least one month, got {self.months}")

    def __iter__(self) -> Iterator[TimeWindow]:
        window_start = self.start
        step = 1
        while window_start < self.end:
            window_end = min(add_months(self.start, step * self.months), self.end)
            yield TimeWindow(start=window_start, end=window_end)
            window_start = window_end
            step += 1

    def __len__(self) -> int:
        return sum(1 for _ in self)


def intervals(start: date, end: date, months: int = 1) -> IntervalPlan:
    """
    Plan the windows between two dates.

    Args:
        start: First day of the range
        end: Last day of the range; the final window ends exactly here
        months: Nominal window length in months

    Returns:
        IntervalPlan that yields TimeWindows; empty when start >= end
    """
    return IntervalPlan(start=start, end=end, months=months)
