"""
Transaction models.

A transaction is a signed amount in minor units booked on a date, optionally
assigned to a category and optionally generated from a recurring template.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Optional

from budgetledger.config import MAX_DESCRIPTION_LENGTH
from budgetledger.errors import ValidationError

from .category import Category


def validate_amount(amount):
    """Amounts are non-zero integers in minor units (floats are rejected)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(
            f"Amount must be an integer in minor units, got {amount!r}"
        )
    if amount == 0:
        raise ValidationError("Amount must be non-zero")


def check_sign(amount: int, category: Optional[Category]):
    """Raise ValidationError when the amount's sign contradicts the category kind."""
    if category is None:
        return
    if not category.kind.accepts(amount):
        expected = "positive" if amount < 0 else "negative"
        raise ValidationError(
            f"Amount {amount} does not match {category.kind.value} category "
            f"'{category.name}' (expected a {expected} amount)"
        )


def _parse_date(value, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid {field_name}: {value!r}")


def _check_category_id(value):
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid category_id: {value!r}")


def _clean_description(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Description must be text, got {value!r}")
    return value.strip() or None


@dataclass
class Transaction:
    """
    A single booked transaction.

    Generated instances carry ``template_id`` and the scheduled
    ``occurrence_date``; ``occurred_on`` may later be edited, the
    occurrence date never is.
    """

    id: Optional[int]
    user_id: str
    amount: int
    occurred_on: date
    category_id: Optional[int] = None
    description: Optional[str] = None
    template_id: Optional[int] = None
    occurrence_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.occurred_on = _parse_date(self.occurred_on, "occurred_on")
        _check_category_id(self.category_id)
        self.description = _clean_description(self.description)

    def validate(self):
        """Check the invariants that do not need the category registry."""
        if not self.user_id or not isinstance(self.user_id, str):
            raise ValidationError(f"Invalid user_id: {self.user_id!r}")
        validate_amount(self.amount)
        if self.description and len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description longer than {MAX_DESCRIPTION_LENGTH} characters"
            )
        if (self.template_id is None) != (self.occurrence_date is None):
            raise ValidationError(
                "template_id and occurrence_date must be set together"
            )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "occurred_on": self.occurred_on.isoformat(),
            "category_id": self.category_id,
            "description": self.description,
            "template_id": self.template_id,
            "occurrence_date": self.occurrence_date.isoformat()
            if self.occurrence_date
            else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row) -> "Transaction":
        """Create a Transaction from a database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            amount=row["amount"],
            occurred_on=date.fromisoformat(row["occurred_on"]),
            category_id=row["category_id"],
            description=row["description"],
            template_id=row["template_id"],
            occurrence_date=date.fromisoformat(row["occurrence_date"])
            if row["occurrence_date"]
            else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


@dataclass
class TransactionPatch:
    """
    A partial update to a transaction.

    Fields left as None are unchanged. ``clear_category`` unassigns the
    category (``category_id`` must then be None).
    """

    amount: Optional[int] = None
    category_id: Optional[int] = None
    occurred_on: Optional[date] = None
    description: Optional[str] = None
    clear_category: bool = False

    def __post_init__(self):
        if self.occurred_on is not None:
            self.occurred_on = _parse_date(self.occurred_on, "occurred_on")
        if self.amount is not None:
            validate_amount(self.amount)
        _check_category_id(self.category_id)
        if self.description is not None and not isinstance(self.description, str):
            raise ValidationError(
                f"Description must be text, got {self.description!r}"
            )
        if self.clear_category and self.category_id is not None:
            raise ValidationError(
                "Cannot set category_id and clear the category in the same patch"
            )

    def is_empty(self) -> bool:
        return (
            self.amount is None
            and self.category_id is None
            and self.occurred_on is None
            and self.description is None
            and not self.clear_category
        )

    def apply(self, transaction: Transaction) -> Transaction:
        """Return a copy of the transaction with this patch applied."""
        changes = {"updated_at": datetime.now(timezone.utc)}
        if self.amount is not None:
            changes["amount"] = self.amount
        if self.clear_category:
            changes["category_id"] = None
        elif self.category_id is not None:
            changes["category_id"] = self.category_id
        if self.occurred_on is not None:
            changes["occurred_on"] = self.occurred_on
        if self.description is not None:
            changes["description"] = self.description
        return replace(transaction, **changes)

    @classmethod
    def from_dict(cls, data: dict) -> "TransactionPatch":
        """
        Build a patch from a request payload.

        An explicit ``"category_id": None`` clears the category.
        """
        unknown = set(data) - {"amount", "category_id", "occurred_on", "description"}
        if unknown:
            raise ValidationError(f"Unknown patch fields: {sorted(unknown)}")
        clear = "category_id" in data and data["category_id"] is None
        return cls(
            amount=data.get("amount"),
            category_id=data.get("category_id"),
            occurred_on=data.get("occurred_on"),
            description=data.get("description"),
            clear_category=clear,
        )
