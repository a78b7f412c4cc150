from .category import Category, CategoryKind, parse_kind, validate_budget_target
from .period import Granularity, Period
from .recurrence import Frequency, RecurrenceRule, RecurringTemplate, parse_frequency
from .transaction import Transaction, TransactionPatch, check_sign, validate_amount

__all__ = [
    "Category",
    "CategoryKind",
    "Frequency",
    "Granularity",
    "Period",
    "RecurrenceRule",
    "RecurringTemplate",
    "Transaction",
    "TransactionPatch",
    "check_sign",
    "parse_frequency",
    "parse_kind",
    "validate_amount",
    "validate_budget_target",
]
