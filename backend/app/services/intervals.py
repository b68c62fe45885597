from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time


def format_clock(value: time) -> str:
    if value.second:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


@dataclass(frozen=True)
class TimeInterval:
    """Half-open range ``[start, end)`` on one calendar date.

    Construction does not reject ``start >= end``; such an interval is reported
    by the time-range rule and never takes part in overlap tests.
    """

    date: date
    start: time
    end: time

    @property
    def is_valid(self) -> bool:
        return self.start < self.end

    def overlaps(self, other: TimeInterval) -> bool:
        return overlaps(self, other)

    def describe(self) -> str:
        return f"{self.date.isoformat()} {format_clock(self.start)}-{format_clock(self.end)}"


def overlaps(first: TimeInterval, second: TimeInterval) -> bool:
    # Touching boundaries (first.end == second.start) do not overlap.
    if first.date != second.date:
        return False
    return first.start < second.end and second.start < first.end
