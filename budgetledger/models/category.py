"""
Category models for budgeting.

Defines the category kind and the Category model with its per-period
budget target.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from budgetledger.config import MAX_CATEGORY_NAME_LENGTH
from budgetledger.errors import ValidationError


class CategoryKind(str, Enum):
    """
    Whether a category collects money coming in or going out.

    The sign of a transaction amount must agree with the kind:
    - INCOME: amounts are positive
    - EXPENSE: amounts are negative
    """

    INCOME = "income"
    EXPENSE = "expense"

    def accepts(self, amount: int) -> bool:
        """Check whether an amount's sign is consistent with this kind."""
        if self == CategoryKind.INCOME:
            return amount > 0
        return amount < 0


def parse_kind(value) -> CategoryKind:
    """Coerce a raw value into a CategoryKind or raise ValidationError."""
    if isinstance(value, CategoryKind):
        return value
    try:
        return CategoryKind(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown category kind: {value!r} (expected income or expense)"
        ) from None


@dataclass
class Category:
    """
    A spending or income category owned by a user.

    Attributes:
        id: Database ID (None until persisted)
        user_id: Owner of the category
        name: Display name
        kind: Income or expense
        budget_target: Per-period target in minor units, or None
        created_at: When the category was created
    """

    id: Optional[int]
    user_id: str
    name: str
    kind: CategoryKind
    budget_target: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        """Normalize the name and validate the kind and target."""
        if self.name:
            self.name = self.name.strip()
        self.kind = parse_kind(self.kind)
        self.validate()

    def validate(self):
        """Raise ValidationError if the category breaks an invariant."""
        if not self.user_id or not isinstance(self.user_id, str):
            raise ValidationError(f"Invalid user_id: {self.user_id!r}")
        if not self.name:
            raise ValidationError("Category name is required")
        if len(self.name) > MAX_CATEGORY_NAME_LENGTH:
            raise ValidationError(
                f"Category name longer than {MAX_CATEGORY_NAME_LENGTH} characters"
            )
        validate_budget_target(self.budget_target)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "kind": self.kind.value,
            "budget_target": self.budget_target,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row) -> "Category":
        """Create a Category from a database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            kind=CategoryKind(row["kind"]),
            budget_target=row["budget_target"],
            created_at=datetime.fromisoformat(row["created_at"])
            if row["created_at"]
            else None,
        )


def validate_budget_target(target):
    """Budget targets are optional non-negative integers in minor units."""
    if target is None:
        return
    if isinstance(target, bool) or not isinstance(target, int):
        raise ValidationError(
            f"Budget target must be an integer in minor units, got {target!r}"
        )
    if target < 0:
        raise ValidationError(f"Budget target must be >= 0, got {target}")
