from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive date interval. A missing end means the window is ongoing."""

    start: date
    end: Optional[date] = None

    def __post_init__(self):
        if self.end is not None and self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")

    @property
    def is_open_ended(self) -> bool:
        return self.end is None

    def effective_end(self, other: Optional["TimeWindow"] = None) -> date:
        """End used for comparisons; an open end stretches to the later of any compared end."""
        if self.end is not None:
            return self.end
        if other is not None and other.end is not None:
            return max(other.end, self.start)
        return date.max

    def overlaps(self, other: "TimeWindow") -> bool:
        return (
            self.start <= other.effective_end(self)
            and other.start <= self.effective_end(other)
        )

    def intersection(self, other: "TimeWindow") -> Optional["TimeWindow"]:
        if not self.overlaps(other):
            return None
        start = max(self.start, other.start)
        if self.end is None and other.end is None:
            return TimeWindow(start, None)
        end = min(self.effective_end(other), other.effective_end(self))
        return TimeWindow(start, end)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.effective_end()

    def duration_days(self) -> Optional[int]:
        """Inclusive day count, or None for an ongoing window."""
        if self.end is None:
            return None
        return (self.end - self.start).days + 1

    def days(self, limit: Optional[date] = None) -> Iterator[date]:
        """Iterate days in the window; ongoing windows need a limit."""
        last = self.end if self.end is not None else limit
        if last is None:
            raise ValueError("Cannot iterate an open-ended window without a limit")
        if limit is not None:
            last = min(last, limit)
        current = self.start
        while current <= last:
            yield current
            current += timedelta(days=1)
