"""
Transaction store adapter.

``LedgerStore`` is the contract the ledger coordinator consumes.
``SQLiteLedgerStore`` implements it over the SQLite repositories, running
each blocking call in a worker thread so callers can await it, and mapping
every storage failure to a typed ledger error.
"""

import asyncio
import functools
import logging
import sqlite3
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Protocol

from budgetledger.errors import (
    DuplicateOccurrenceError,
    LedgerError,
    StorageError,
    ValidationError,
)
from budgetledger.models import Category, RecurringTemplate, Transaction

from .base import BaseRepository
from .categories import CategoryRepository
from .templates import TemplateRepository
from .transactions import TransactionRepository

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Storage operations the ledger coordinator relies on."""

    async def insert_transaction(self, transaction: Transaction) -> Transaction: ...

    async def update_transaction(
        self, transaction: Transaction
    ) -> Optional[Transaction]: ...

    async def delete_transactions(
        self, transaction_ids: Iterable[int], owner: str
    ) -> list[Transaction]: ...

    async def query_transactions(
        self, owner: str, start: date, end: date
    ) -> list[Transaction]: ...

    async def query_templates(
        self, owner: str, active_only: bool = True
    ) -> list[RecurringTemplate]: ...

    async def get_transaction(
        self, owner: str, transaction_id: int
    ) -> Optional[Transaction]: ...

    async def get_occurrence(
        self, template_id: int, occurrence_date: date
    ) -> Optional[Transaction]: ...

    async def occurrence_dates(
        self, template_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> set[date]: ...

    async def list_categories(self, owner: str) -> list[Category]: ...

    async def insert_category(self, category: Category) -> Category: ...

    async def update_category_target(
        self, owner: str, category_id: int, budget_target: Optional[int]
    ) -> Optional[Category]: ...

    async def insert_template(self, template: RecurringTemplate) -> RecurringTemplate: ...

    async def get_template(
        self, owner: str, template_id: int
    ) -> Optional[RecurringTemplate]: ...

    async def update_template(
        self, template: RecurringTemplate
    ) -> Optional[RecurringTemplate]: ...

    async def set_template_active(
        self, owner: str, template_id: int, active: bool
    ) -> Optional[RecurringTemplate]: ...


def _is_occurrence_conflict(error: sqlite3.IntegrityError) -> bool:
    message = str(error)
    return "transactions.template_id" in message and "occurrence_date" in message


class SQLiteLedgerStore:
    """
    SQLite-backed LedgerStore.

    Composes the category, template and transaction repositories around a
    single database file, the way the ledger facade composes its
    sub-repositories.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize the store and its schema.

        Args:
            db_path: Path to the SQLite database file. Defaults to data/budgetledger.db
        """
        try:
            base = BaseRepository(db_path, init_schema=True)
        except sqlite3.Error as e:
            raise StorageError(f"Could not initialize database: {e}", cause=e) from e

        self.db_path = base.db_path
        self.categories = CategoryRepository(self.db_path)
        self.templates = TemplateRepository(self.db_path)
        self.transactions = TransactionRepository(self.db_path)
        logger.info(f"SQLiteLedgerStore initialized with db_path: {self.db_path}")

    async def _call(self, operation: str, func, *args):
        """Run a blocking repository call in a thread and map its failures."""
        try:
            return await asyncio.to_thread(functools.partial(func, *args))
        except LedgerError:
            raise
        except sqlite3.IntegrityError as e:
            if _is_occurrence_conflict(e):
                raise DuplicateOccurrenceError(
                    f"{operation}: occurrence already materialized", cause=e
                ) from e
            if "categories.name" in str(e):
                raise ValidationError(
                    "A category with this name already exists", cause=e
                ) from e
            logger.error(f"{operation} violated a constraint: {e}", exc_info=True)
            raise StorageError(f"{operation} failed: {e}", cause=e) from e
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise StorageError(f"{operation} failed: {e}", cause=e) from e

    # Transactions

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        return await self._call(
            "insert_transaction", self.transactions.insert, transaction
        )

    async def update_transaction(self, transaction: Transaction) -> Optional[Transaction]:
        return await self._call(
            "update_transaction", self.transactions.update, transaction
        )

    async def delete_transactions(
        self, transaction_ids: Iterable[int], owner: str
    ) -> list[Transaction]:
        return await self._call(
            "delete_transactions",
            self.transactions.delete_many,
            list(transaction_ids),
            owner,
        )

    async def query_transactions(
        self, owner: str, start: date, end: date
    ) -> list[Transaction]:
        return await self._call(
            "query_transactions", self.transactions.query, owner, start, end
        )

    async def get_transaction(
        self, owner: str, transaction_id: int
    ) -> Optional[Transaction]:
        return await self._call(
            "get_transaction", self.transactions.get_by_id, transaction_id, owner
        )

    async def get_occurrence(
        self, template_id: int, occurrence_date: date
    ) -> Optional[Transaction]:
        return await self._call(
            "get_occurrence",
            self.transactions.get_occurrence,
            template_id,
            occurrence_date,
        )

    async def occurrence_dates(
        self, template_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> set[date]:
        return await self._call(
            "occurrence_dates",
            self.transactions.occurrence_dates,
            template_id,
            start,
            end,
        )

    # Categories

    async def list_categories(self, owner: str) -> list[Category]:
        return await self._call(
            "list_categories", self.categories.list_for_user, owner
        )

    async def insert_category(self, category: Category) -> Category:
        return await self._call("insert_category", self.categories.insert, category)

    async def update_category_target(
        self, owner: str, category_id: int, budget_target: Optional[int]
    ) -> Optional[Category]:
        return await self._call(
            "update_category_target",
            self.categories.update_budget_target,
            category_id,
            owner,
            budget_target,
        )

    # Templates

    async def query_templates(
        self, owner: str, active_only: bool = True
    ) -> list[RecurringTemplate]:
        return await self._call(
            "query_templates", self.templates.list_for_user, owner, active_only
        )

    async def insert_template(self, template: RecurringTemplate) -> RecurringTemplate:
        return await self._call("insert_template", self.templates.insert, template)

    async def get_template(
        self, owner: str, template_id: int
    ) -> Optional[RecurringTemplate]:
        return await self._call(
            "get_template", self.templates.get_by_id, template_id, owner
        )

    async def update_template(
        self, template: RecurringTemplate
    ) -> Optional[RecurringTemplate]:
        return await self._call("update_template", self.templates.update, template)

    async def set_template_active(
        self, owner: str, template_id: int, active: bool
    ) -> Optional[RecurringTemplate]:
        return await self._call(
            "set_template_active",
            self.templates.set_active,
            template_id,
            owner,
            active,
        )
