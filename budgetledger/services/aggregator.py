"""
Aggregator.

Groups transactions by category over a period and reconciles the totals
against budget targets. Pure and deterministic: the result depends only on
the transaction set, the categories and the period, never on input order.
All sums use integer minor units.
"""

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Iterable, Optional, Union

from budgetledger.config import (
    UNCATEGORIZED_KEY,
    get_near_limit_threshold,
    get_variance_convention,
)
from budgetledger.errors import ValidationError
from budgetledger.models import Category, CategoryKind, Period, Transaction

from .amounts import format_amount

CategoryKey = Union[int, str]


class VarianceConvention(str, Enum):
    """
    Sign convention for variance.

    With TARGET_MINUS_ACTUAL a positive variance means the category is
    under budget; ACTUAL_MINUS_TARGET flips the sign.
    """

    TARGET_MINUS_ACTUAL = "target_minus_actual"
    ACTUAL_MINUS_TARGET = "actual_minus_target"

    def variance(self, target: Optional[int], actual: int) -> Optional[int]:
        if target is None:
            return None
        if self == VarianceConvention.TARGET_MINUS_ACTUAL:
            return target - actual
        return actual - target


def resolve_convention(convention=None) -> VarianceConvention:
    """Use the given convention, falling back to the configured one."""
    if convention is None:
        convention = get_variance_convention()
    try:
        return VarianceConvention(convention)
    except ValueError:
        raise ValidationError(f"Unknown variance convention: {convention!r}") from None


class BudgetStatus(str, Enum):
    ON_TRACK = "on_track"
    NEAR_LIMIT = "near_limit"
    OVER_BUDGET = "over_budget"


def budget_status(
    kind: Optional[CategoryKind],
    actual: int,
    target: Optional[int],
    near_limit_threshold: float,
) -> Optional[BudgetStatus]:
    """
    Classify an expense category against its target.

    Only expense categories with a target have a status. Spending is the
    negated actual, since expenses are stored as negative amounts.
    """
    if kind != CategoryKind.EXPENSE or target is None:
        return None
    spent = -actual
    if spent > target:
        return BudgetStatus.OVER_BUDGET
    # Exact comparison, no float rounding on amounts
    if spent > target * Fraction(near_limit_threshold).limit_denominator(10_000):
        return BudgetStatus.NEAR_LIMIT
    return BudgetStatus.ON_TRACK


@dataclass(frozen=True)
class Aggregate:
    """Derived totals for one category over one period."""

    category_id: CategoryKey
    name: str
    kind: Optional[CategoryKind]
    actual: int
    target: Optional[int]
    variance: Optional[int]
    count: int = 0
    status: Optional[BudgetStatus] = None

    @property
    def percent_used(self) -> Optional[float]:
        """Share of an expense target already spent, for display only."""
        if self.kind != CategoryKind.EXPENSE or not self.target:
            return None
        return round(-self.actual * 100 / self.target, 2)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "category_id": self.category_id,
            "name": self.name,
            "kind": self.kind.value if self.kind else None,
            "actual": self.actual,
            "target": self.target,
            "variance": self.variance,
            "count": self.count,
            "status": self.status.value if self.status else None,
            "percent_used": self.percent_used,
        }


def aggregate(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    period: Period,
    *,
    convention=None,
    include_uncategorized: bool = True,
    near_limit_threshold: Optional[float] = None,
) -> dict[CategoryKey, Aggregate]:
    """
    Compute per-category actuals and variance for a period.

    Args:
        transactions: Transactions to consider; those outside the period are ignored
        categories: Registered categories; each gets an aggregate even with no activity
        period: Aggregation boundary
        convention: Variance sign convention (defaults to the configured one)
        include_uncategorized: Emit the reserved uncategorized bucket when it has activity
        near_limit_threshold: Fraction of target that counts as near the limit

    Returns:
        Mapping of category id (or ``"uncategorized"``) to its Aggregate. Registered
        categories come first in the given order, then categories that are not
        registered, then the uncategorized bucket.
    """
    convention = resolve_convention(convention)
    if near_limit_threshold is None:
        near_limit_threshold = get_near_limit_threshold()

    totals: dict[CategoryKey, int] = {}
    counts: dict[CategoryKey, int] = {}
    for transaction in transactions:
        if not period.contains(transaction.occurred_on):
            continue
        key = (
            transaction.category_id
            if transaction.category_id is not None
            else UNCATEGORIZED_KEY
        )
        if key == UNCATEGORIZED_KEY and not include_uncategorized:
            continue
        totals[key] = totals.get(key, 0) + transaction.amount
        counts[key] = counts.get(key, 0) + 1

    result: dict[CategoryKey, Aggregate] = {}
    for category in categories:
        actual = totals.get(category.id, 0)
        result[category.id] = Aggregate(
            category_id=category.id,
            name=category.name,
            kind=category.kind,
            actual=actual,
            target=category.budget_target,
            variance=convention.variance(category.budget_target, actual),
            count=counts.get(category.id, 0),
            status=budget_status(
                category.kind, actual, category.budget_target, near_limit_threshold
            ),
        )

    unknown = sorted(k for k in totals if k not in result and k != UNCATEGORIZED_KEY)
    for key in unknown:
        result[key] = Aggregate(
            category_id=key,
            name=f"Unknown category {key}",
            kind=None,
            actual=totals[key],
            target=None,
            variance=None,
            count=counts[key],
        )

    if UNCATEGORIZED_KEY in totals:
        result[UNCATEGORIZED_KEY] = Aggregate(
            category_id=UNCATEGORIZED_KEY,
            name="Uncategorized",
            kind=None,
            actual=totals[UNCATEGORIZED_KEY],
            target=None,
            variance=None,
            count=counts[UNCATEGORIZED_KEY],
        )

    return result


@dataclass(frozen=True)
class BudgetAlert:
    """A category that is close to or past its budget target."""

    category_id: CategoryKey
    name: str
    status: BudgetStatus
    spent: int
    target: int

    @property
    def title(self) -> str:
        if self.status == BudgetStatus.OVER_BUDGET:
            return f'Budget "{self.name}" exceeded'
        return f'Budget "{self.name}" near limit'

    @property
    def message(self) -> str:
        percent = f" ({self.spent * 100 / self.target:.1f}%)" if self.target else ""
        return (
            f"You've spent {format_amount(self.spent)} of your "
            f"{format_amount(self.target)} budget{percent}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "category_id": self.category_id,
            "name": self.name,
            "status": self.status.value,
            "spent": self.spent,
            "target": self.target,
            "title": self.title,
            "message": self.message,
        }


def budget_alerts(aggregates: dict[CategoryKey, Aggregate]) -> list[BudgetAlert]:
    """List categories near or over their limit, over-budget ones first."""
    alerts = [
        BudgetAlert(
            category_id=agg.category_id,
            name=agg.name,
            status=agg.status,
            spent=-agg.actual,
            target=agg.target,
        )
        for agg in aggregates.values()
        if agg.status in (BudgetStatus.NEAR_LIMIT, BudgetStatus.OVER_BUDGET)
    ]
    alerts.sort(
        key=lambda a: (a.status != BudgetStatus.OVER_BUDGET, str(a.category_id))
    )
    return alerts
