"""
Budget Ledger - personal finance ledger engine

Records transactions against categories, expands recurring templates into
dated instances on demand, and reconciles per-category actuals against
budget targets.
"""

from .config import VERSION
from .db import SQLiteLedgerStore
from .errors import (
    InvalidRuleError,
    LedgerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .models import (
    Category,
    CategoryKind,
    Frequency,
    Granularity,
    Period,
    RecurrenceRule,
    RecurringTemplate,
    Transaction,
    TransactionPatch,
)
from .services import (
    Aggregate,
    LedgerCoordinator,
    PeriodView,
    RecurrenceExpander,
    VarianceConvention,
    aggregate,
)

__version__ = VERSION

__all__ = [
    "Aggregate",
    "Category",
    "CategoryKind",
    "Frequency",
    "Granularity",
    "InvalidRuleError",
    "LedgerCoordinator",
    "LedgerError",
    "NotFoundError",
    "Period",
    "PeriodView",
    "RecurrenceExpander",
    "RecurrenceRule",
    "RecurringTemplate",
    "SQLiteLedgerStore",
    "StorageError",
    "Transaction",
    "TransactionPatch",
    "ValidationError",
    "VarianceConvention",
    "aggregate",
]
