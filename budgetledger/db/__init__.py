"""
Database module for the budget ledger.

Provides the SQLite storage layer behind the ledger coordinator.

Structure:
- base.py: Base repository with connection management and schema
- categories.py: Category CRUD and budget targets
- templates.py: Recurring template CRUD
- transactions.py: Transaction CRUD with soft deletion
- store.py: LedgerStore contract and the async SQLite adapter
"""

from .base import BaseRepository
from .categories import CategoryRepository
from .store import LedgerStore, SQLiteLedgerStore
from .templates import TemplateRepository
from .transactions import TransactionRepository

__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "CategoryRepository",
    "TemplateRepository",
    "TransactionRepository",
    # Store
    "LedgerStore",
    "SQLiteLedgerStore",
]
