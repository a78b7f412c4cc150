"""
Recurring template models.

A recurring template describes a transaction that repeats on a schedule.
Concrete instances are generated from it lazily, period by period.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from budgetledger.errors import InvalidRuleError


class Frequency(str, Enum):
    """Unit a recurrence rule steps by."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def parse_frequency(value) -> Frequency:
    """Coerce a raw value into a Frequency or raise InvalidRuleError."""
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        raise InvalidRuleError(
            f"Unknown frequency: {value!r} "
            f"(expected one of {', '.join(f.value for f in Frequency)})"
        ) from None


@dataclass(frozen=True)
class RecurrenceRule:
    """
    When a recurring template fires.

    Attributes:
        frequency: Daily, weekly, monthly or yearly
        anchor: Date of the first occurrence
        interval: Number of frequency units between occurrences (>= 1)
        end_date: Last date an occurrence may fall on (inclusive), or None
        max_occurrences: Total number of occurrences counted from the anchor, or None
    """

    frequency: Frequency
    anchor: date
    interval: int = 1
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = None

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "frequency", parse_frequency(self.frequency))

    def validate(self):
        """Raise InvalidRuleError if the rule cannot be expanded."""
        if not isinstance(self.anchor, date):
            raise InvalidRuleError(f"Invalid anchor date: {self.anchor!r}")
        if isinstance(self.interval, bool) or not isinstance(self.interval, int):
            raise InvalidRuleError(f"Interval must be an integer, got {self.interval!r}")
        if self.interval <= 0:
            raise InvalidRuleError(f"Interval must be >= 1, got {self.interval}")
        if self.end_date is not None and self.end_date < self.anchor:
            raise InvalidRuleError(
                f"End date {self.end_date} is before anchor {self.anchor}"
            )
        if self.max_occurrences is not None and (
            isinstance(self.max_occurrences, bool)
            or not isinstance(self.max_occurrences, int)
            or self.max_occurrences <= 0
        ):
            raise InvalidRuleError(
                f"max_occurrences must be a positive integer, got {self.max_occurrences!r}"
            )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "frequency": self.frequency.value,
            "anchor": self.anchor.isoformat(),
            "interval": self.interval,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "max_occurrences": self.max_occurrences,
        }


@dataclass
class RecurringTemplate:
    """
    A transaction that repeats according to a RecurrenceRule.

    Deactivating a template stops further generation; instances that
    already exist are kept.
    """

    id: Optional[int]
    user_id: str
    amount: int
    rule: RecurrenceRule
    category_id: Optional[int] = None
    description: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = None

    def overlaps(self, start: date, end: date) -> bool:
        """Check whether the template could fire inside [start, end]."""
        if self.rule.anchor > end:
            return False
        if self.rule.end_date is not None and self.rule.end_date < start:
            return False
        return True

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "rule": self.rule.to_dict(),
            "category_id": self.category_id,
            "description": self.description,
            "active": self.active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row) -> "RecurringTemplate":
        """Create a RecurringTemplate from a database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            amount=row["amount"],
            rule=RecurrenceRule(
                frequency=Frequency(row["frequency"]),
                anchor=date.fromisoformat(row["anchor_date"]),
                interval=row["interval_count"],
                end_date=date.fromisoformat(row["end_date"])
                if row["end_date"]
                else None,
                max_occurrences=row["max_occurrences"],
            ),
            category_id=row["category_id"],
            description=row["description"],
            active=bool(row["active"]),
            created_at=datetime.fromisoformat(row["created_at"])
            if row["created_at"]
            else None,
        )
