from .aggregator import (
    Aggregate,
    BudgetAlert,
    BudgetStatus,
    VarianceConvention,
    aggregate,
    budget_alerts,
)
from .amounts import format_amount, to_major
from .cache import AggregateCache
from .coordinator import (
    BulkEditResult,
    EditFailure,
    LedgerCoordinator,
    PeriodView,
    UpcomingOccurrence,
)
from .export import ExportFormat, ExportService
from .recurrence import RecurrenceExpander, add_months, validate_rule
from .registry import CategoryRegistry

__all__ = [
    "Aggregate",
    "AggregateCache",
    "BudgetAlert",
    "BudgetStatus",
    "BulkEditResult",
    "CategoryRegistry",
    "EditFailure",
    "ExportFormat",
    "ExportService",
    "LedgerCoordinator",
    "PeriodView",
    "RecurrenceExpander",
    "UpcomingOccurrence",
    "VarianceConvention",
    "add_months",
    "aggregate",
    "budget_alerts",
    "format_amount",
    "to_major",
    "validate_rule",
]
