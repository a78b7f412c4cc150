"""
Aggregation periods.

A period is a contiguous, inclusive date range used as an aggregation
boundary. Periods are never persisted; they are derived from a reference
date and a granularity.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from budgetledger.errors import ValidationError


class Granularity(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class Period:
    """Inclusive date range [start, end]. Equality and hashing use the dates only."""

    start: date
    end: date
    granularity: Optional[Granularity] = field(default=None, compare=False)

    def __post_init__(self):
        if self.start > self.end:
            raise ValidationError(
                f"Period start {self.start} is after its end {self.end}"
            )

    @classmethod
    def containing(cls, reference: date, granularity) -> "Period":
        """Return the period of the given granularity that contains ``reference``."""
        try:
            granularity = Granularity(granularity)
        except ValueError:
            raise ValidationError(f"Unknown granularity: {granularity!r}") from None

        if granularity == Granularity.WEEKLY:
            # Weeks start on Sunday
            start = reference - timedelta(days=(reference.weekday() + 1) % 7)
            end = start + timedelta(days=6)
        elif granularity == Granularity.MONTHLY:
            start = reference.replace(day=1)
            last_day = calendar.monthrange(reference.year, reference.month)[1]
            end = reference.replace(day=last_day)
        elif granularity == Granularity.QUARTERLY:
            first_month = 3 * ((reference.month - 1) // 3) + 1
            start = date(reference.year, first_month, 1)
            last_day = calendar.monthrange(reference.year, first_month + 2)[1]
            end = date(reference.year, first_month + 2, last_day)
        else:
            start = date(reference.year, 1, 1)
            end = date(reference.year, 12, 31)

        return cls(start, end, granularity)

    @classmethod
    def month(cls, year: int, month: int) -> "Period":
        return cls.containing(date(year, month, 1), Granularity.MONTHLY)

    @classmethod
    def custom(cls, start: date, end: date) -> "Period":
        return cls(start, end)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def label(self) -> str:
        if self.granularity == Granularity.MONTHLY:
            return self.start.strftime("%Y-%m")
        if self.granularity == Granularity.QUARTERLY:
            return f"{self.start.year}-Q{(self.start.month - 1) // 3 + 1}"
        if self.granularity == Granularity.YEARLY:
            return str(self.start.year)
        return f"{self.start.isoformat()}..{self.end.isoformat()}"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, start: date, end: Optional[date]) -> bool:
        """Check whether [start, end] intersects this period (end=None is open)."""
        if start > self.end:
            return False
        return end is None or end >= self.start

    def next(self) -> "Period":
        if self.granularity is None:
            return Period(self.end + timedelta(days=1), self.end + timedelta(days=self.days))
        return Period.containing(self.end + timedelta(days=1), self.granularity)

    def previous(self) -> "Period":
        if self.granularity is None:
            return Period(
                self.start - timedelta(days=self.days), self.start - timedelta(days=1)
            )
        return Period.containing(self.start - timedelta(days=1), self.granularity)

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "granularity": self.granularity.value if self.granularity else None,
            "label": self.label,
        }
