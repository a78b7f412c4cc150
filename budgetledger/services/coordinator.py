"""
Ledger coordinator.

The single entry point the calling layer uses to read and write a user's
ledger. Recurring templates are materialized lazily: whenever a period is
listed, every occurrence that falls inside it is stored before the period
is read and aggregated. There is no background scheduler; a period nobody
looks at is never generated.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Mapping, Optional, Union

from budgetledger.config import DEFAULT_UPCOMING_HORIZON_DAYS, UNCATEGORIZED_KEY
from budgetledger.db.store import LedgerStore
from budgetledger.errors import (
    DuplicateOccurrenceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from budgetledger.models import (
    Category,
    Period,
    RecurrenceRule,
    RecurringTemplate,
    Transaction,
    TransactionPatch,
    validate_amount,
    validate_budget_target,
)

from .aggregator import Aggregate, CategoryKey, aggregate, resolve_convention
from .cache import AggregateCache
from .recurrence import RecurrenceExpander, validate_rule
from .registry import CategoryRegistry

logger = logging.getLogger(__name__)

PatchLike = Union[TransactionPatch, Mapping]


def _category_key(transaction: Transaction) -> CategoryKey:
    if transaction.category_id is None:
        return UNCATEGORIZED_KEY
    return transaction.category_id


def _check_user(user_id):
    if not user_id or not isinstance(user_id, str):
        raise ValidationError(f"Invalid user_id: {user_id!r}")


def _check_id(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


def _as_patch(patch: PatchLike) -> TransactionPatch:
    if isinstance(patch, TransactionPatch):
        return patch
    if isinstance(patch, Mapping):
        return TransactionPatch.from_dict(dict(patch))
    raise ValidationError(f"Invalid patch: {patch!r}")


@dataclass
class PeriodView:
    """Result of listing a period: its transactions and their aggregates."""

    period: Period
    transactions: list[Transaction]
    aggregates: dict[CategoryKey, Aggregate]
    materialized: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "period": self.period.to_dict(),
            "transactions": [t.to_dict() for t in self.transactions],
            "aggregates": {
                str(key): agg.to_dict() for key, agg in self.aggregates.items()
            },
            "materialized": self.materialized,
        }


@dataclass
class EditFailure:
    transaction_id: object
    error: LedgerError

    def to_dict(self) -> dict:
        return {"transaction_id": self.transaction_id, **self.error.to_dict()}


@dataclass
class BulkEditResult:
    """Outcome of a bulk edit; partial success is normal."""

    applied_count: int = 0
    failures: list[EditFailure] = field(default_factory=list)
    applied: list[Transaction] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "applied_count": self.applied_count,
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class UpcomingOccurrence:
    template: RecurringTemplate
    next_date: date
    days_until: int

    def to_dict(self) -> dict:
        return {
            "template_id": self.template.id,
            "description": self.template.description,
            "amount": self.template.amount,
            "next_date": self.next_date.isoformat(),
            "days_until": self.days_until,
        }


class LedgerCoordinator:
    """
    Orchestrates recurrence expansion, storage writes and aggregation for
    one user at a time. It is the only component that mutates the store and
    it never reads another user's records.
    """

    def __init__(
        self,
        store: LedgerStore,
        expander: Optional[RecurrenceExpander] = None,
        cache: Optional[AggregateCache] = None,
        convention=None,
        include_uncategorized: bool = True,
    ):
        """
        Initialize the coordinator.

        Args:
            store: Storage adapter
            expander: Recurrence expander (a default one is created if omitted)
            cache: Aggregate cache (a private one is created if omitted)
            convention: Variance sign convention (defaults to the configured one)
            include_uncategorized: Whether aggregates include the uncategorized bucket
        """
        self.store = store
        self.expander = expander or RecurrenceExpander()
        self.cache = cache if cache is not None else AggregateCache()
        self.convention = resolve_convention(convention)
        self.include_uncategorized = include_uncategorized

    async def _registry(self, user_id: str) -> CategoryRegistry:
        return CategoryRegistry(await self.store.list_categories(user_id))

    def _invalidate(self, transaction: Transaction):
        self.cache.invalidate(
            transaction.user_id, _category_key(transaction), transaction.occurred_on
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_period(self, user_id: str, period: Period) -> PeriodView:
        """
        Materialize due recurring instances, then read and aggregate a period.

        Materialization completes before the period is read, so aggregation
        never sees a partially generated period.
        """
        _check_user(user_id)

        materialized = await self._materialize(user_id, period)
        generation = self.cache.generation(user_id)
        transactions = await self.store.query_transactions(
            user_id, period.start, period.end
        )

        aggregates = self.cache.get_period(user_id, period)
        if aggregates is None:
            registry = await self._registry(user_id)
            aggregates = aggregate(
                transactions,
                registry,
                period,
                convention=self.convention,
                include_uncategorized=self.include_uncategorized,
            )
            # A write that lands while this runs leaves the period uncached
            self.cache.put_period(user_id, period, aggregates, generation)
        else:
            logger.debug(f"Aggregate cache hit for user {user_id} {period.label}")

        logger.info(
            f"Listed {period.label} for user {user_id}: "
            f"{len(transactions)} transactions, {materialized} newly materialized"
        )
        return PeriodView(
            period=period,
            transactions=transactions,
            aggregates=aggregates,
            materialized=materialized,
        )

    async def _materialize(self, user_id: str, period: Period) -> int:
        """Store every missing occurrence of the user's active templates in a period."""
        created = 0
        templates = await self.store.query_templates(user_id, active_only=True)
        for template in templates:
            if not template.overlaps(period.start, period.end):
                continue

            existing = await self.store.occurrence_dates(
                template.id, period.start, period.end
            )
            for day in self.expander.expand(
                template, period.start, period.end, existing
            ):
                instance = Transaction(
                    id=None,
                    user_id=user_id,
                    amount=template.amount,
                    occurred_on=day,
                    category_id=template.category_id,
                    description=template.description,
                    template_id=template.id,
                    occurrence_date=day,
                )
                try:
                    stored = await self.store.insert_transaction(instance)
                except DuplicateOccurrenceError:
                    # A concurrent caller got there first; read theirs instead
                    winner = await self.store.get_occurrence(template.id, day)
                    logger.debug(
                        f"Occurrence {day} of template {template.id} already "
                        f"{'materialized' if winner else 'deleted'}"
                    )
                    continue
                created += 1
                self._invalidate(stored)

        return created

    async def upcoming_recurring(
        self,
        user_id: str,
        today: date,
        horizon_days: int = DEFAULT_UPCOMING_HORIZON_DAYS,
    ) -> list[UpcomingOccurrence]:
        """
        Next occurrence of each active template within ``horizon_days`` of today.

        Read-only: nothing is materialized.
        """
        _check_user(user_id)
        upcoming = []
        for template in await self.store.query_templates(user_id, active_only=True):
            next_date = self.expander.next_occurrence(template, today)
            if next_date is None:
                continue
            days_until = (next_date - today).days
            if days_until <= horizon_days:
                upcoming.append(UpcomingOccurrence(template, next_date, days_until))
        upcoming.sort(key=lambda u: (u.next_date, u.template.id))
        return upcoming

    # =========================================================================
    # Transaction writes
    # =========================================================================

    async def add_transaction(
        self,
        user_id: str,
        amount: int,
        occurred_on: date,
        category_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """Record a one-off transaction."""
        _check_user(user_id)
        transaction = Transaction(
            id=None,
            user_id=user_id,
            amount=amount,
            occurred_on=occurred_on,
            category_id=category_id,
            description=description,
        )
        transaction.validate()
        registry = await self._registry(user_id)
        registry.check_amount(transaction.category_id, transaction.amount)

        stored = await self.store.insert_transaction(transaction)
        self._invalidate(stored)
        return stored

    async def apply_edit(
        self, user_id: str, transaction_id: int, patch: PatchLike
    ) -> Transaction:
        """
        Apply a patch to one transaction.

        Raises:
            NotFoundError: If the transaction is absent, deleted, or not owned
            ValidationError: If the patched transaction breaks an invariant;
                the stored record is left unchanged
        """
        _check_user(user_id)
        registry = await self._registry(user_id)
        return await self._apply_edit(user_id, transaction_id, patch, registry)

    async def _apply_edit(
        self,
        user_id: str,
        transaction_id,
        patch: PatchLike,
        registry: CategoryRegistry,
    ) -> Transaction:
        transaction_id = _check_id(transaction_id, "transaction_id")
        patch = _as_patch(patch)

        current = await self.store.get_transaction(user_id, transaction_id)
        if current is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if patch.is_empty():
            return current

        updated = patch.apply(current)
        updated.validate()
        registry.check_amount(updated.category_id, updated.amount)

        stored = await self.store.update_transaction(updated)
        if stored is None:
            # Deleted between the read and the write
            raise NotFoundError(f"Transaction {transaction_id} not found")

        self._invalidate(current)
        self._invalidate(stored)
        return stored

    async def apply_bulk_edit(
        self,
        user_id: str,
        edits: Union[Mapping[int, PatchLike], Iterable[tuple[int, PatchLike]]],
    ) -> BulkEditResult:
        """
        Apply many patches; each one succeeds or fails on its own.

        Failures are collected with their cause instead of aborting the batch.
        """
        _check_user(user_id)
        if isinstance(edits, Mapping):
            edits = edits.items()

        registry = await self._registry(user_id)
        result = BulkEditResult()
        for transaction_id, patch in edits:
            try:
                stored = await self._apply_edit(
                    user_id, transaction_id, patch, registry
                )
            except LedgerError as e:
                logger.info(
                    f"Bulk edit of transaction {transaction_id} for user "
                    f"{user_id} failed: {e.kind}: {e.message}"
                )
                result.failures.append(EditFailure(transaction_id, e))
                continue
            result.applied.append(stored)
            result.applied_count += 1

        logger.info(
            f"Bulk edit for user {user_id}: {result.applied_count} applied, "
            f"{len(result.failures)} failed"
        )
        return result

    async def bulk_delete(self, user_id: str, transaction_ids: Iterable[int]) -> int:
        """
        Delete the given transactions that belong to the user.

        Unknown, already deleted, or foreign identifiers are skipped, not
        errors. Returns the number actually deleted.
        """
        _check_user(user_id)
        ids = [_check_id(tid, "transaction_id") for tid in transaction_ids]
        if not ids:
            return 0

        deleted = await self.store.delete_transactions(ids, user_id)
        for transaction in deleted:
            self._invalidate(transaction)

        logger.info(
            f"Bulk delete for user {user_id}: {len(deleted)} of "
            f"{len(set(ids))} requested"
        )
        return len(deleted)

    # =========================================================================
    # Categories and templates
    # =========================================================================

    async def create_category(
        self,
        user_id: str,
        name: str,
        kind,
        budget_target: Optional[int] = None,
    ) -> Category:
        _check_user(user_id)
        category = Category(
            id=None, user_id=user_id, name=name, kind=kind, budget_target=budget_target
        )
        stored = await self.store.insert_category(category)
        # Every cached period must now list the new category
        self.cache.invalidate_user(user_id)
        return stored

    async def set_budget_target(
        self, user_id: str, category_id: int, budget_target: Optional[int]
    ) -> Category:
        _check_user(user_id)
        category_id = _check_id(category_id, "category_id")
        validate_budget_target(budget_target)

        updated = await self.store.update_category_target(
            user_id, category_id, budget_target
        )
        if updated is None:
            raise NotFoundError(f"Category {category_id} not found")
        self.cache.invalidate_category(user_id, category_id)
        return updated

    async def create_template(
        self,
        user_id: str,
        amount: int,
        rule: RecurrenceRule,
        category_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> RecurringTemplate:
        """
        Create a recurring template.

        The rule is validated here, so a malformed rule never reaches expansion.

        Raises:
            InvalidRuleError: If the recurrence rule is malformed
            ValidationError: If the amount does not fit the category
        """
        _check_user(user_id)
        validate_rule(rule)
        validate_amount(amount)
        registry = await self._registry(user_id)
        registry.check_amount(category_id, amount)

        template = RecurringTemplate(
            id=None,
            user_id=user_id,
            amount=amount,
            rule=rule,
            category_id=category_id,
            description=description.strip() if description else None,
        )
        return await self.store.insert_template(template)

    async def update_template(
        self,
        user_id: str,
        template_id: int,
        amount: Optional[int] = None,
        category_id: Optional[int] = None,
        description: Optional[str] = None,
        clear_category: bool = False,
    ) -> RecurringTemplate:
        """
        Change a template's amount, category or description.

        Only occurrences generated from now on use the new values; instances
        already stored are left as they are.

        Raises:
            NotFoundError: If the template is absent or not owned
            ValidationError: If the amount does not fit the category
        """
        _check_user(user_id)
        template_id = _check_id(template_id, "template_id")
        patch = TransactionPatch(
            amount=amount,
            category_id=category_id,
            description=description,
            clear_category=clear_category,
        )

        current = await self.store.get_template(user_id, template_id)
        if current is None:
            raise NotFoundError(f"Template {template_id} not found")

        changes = {}
        if patch.amount is not None:
            changes["amount"] = patch.amount
        if patch.clear_category:
            changes["category_id"] = None
        elif patch.category_id is not None:
            changes["category_id"] = patch.category_id
        if patch.description is not None:
            changes["description"] = patch.description.strip() or None
        if not changes:
            return current

        updated = replace(current, **changes)
        registry = await self._registry(user_id)
        registry.check_amount(updated.category_id, updated.amount)

        stored = await self.store.update_template(updated)
        if stored is None:
            raise NotFoundError(f"Template {template_id} not found")
        return stored

    async def deactivate_template(
        self, user_id: str, template_id: int
    ) -> RecurringTemplate:
        """Stop generating instances; instances already stored are kept."""
        _check_user(user_id)
        template_id = _check_id(template_id, "template_id")
        template = await self.store.set_template_active(user_id, template_id, False)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template
