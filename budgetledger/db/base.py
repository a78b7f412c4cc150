"""
Base repository module with connection management and schema initialization.

Provides the foundation for all database operations in the budget ledger.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from budgetledger.config import DB_TIMEOUT, DEFAULT_DB_PATH

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Base repository class with SQLite connection management.

    Provides schema initialization and common database utilities for all
    repository classes. A connection is opened per operation, so repositories
    can be used from worker threads.
    """

    def __init__(self, db_path: Optional[Path] = None, init_schema: bool = True):
        """
        Initialize the base repository.

        Args:
            db_path: Path to the SQLite database file. Defaults to data/budgetledger.db
            init_schema: Whether to initialize the schema on startup
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._ensure_db_directory()
        if init_schema:
            self._init_schema()

    def _ensure_db_directory(self):
        """Ensure the database directory exists."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Database directory ensured: {self.db_path.parent}")
        except Exception as e:
            logger.error(f"Failed to create database directory: {e}", exc_info=True)
            raise

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=DB_TIMEOUT)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            # Constraint violations are expected outcomes for callers to handle
            if conn:
                conn.rollback()
            raise
        except sqlite3.OperationalError as e:
            logger.error(f"Database locked or operational error: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise
        except Exception as e:
            logger.error(f"Database error: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def _init_schema(self):
        """Initialize the schema for categories, templates and transactions."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                    name TEXT NOT NULL CHECK(length(name) > 0),
                    kind TEXT NOT NULL CHECK(kind IN ('income', 'expense')),
                    budget_target INTEGER CHECK(
                        budget_target IS NULL OR budget_target >= 0
                    ),
                    created_at TEXT NOT NULL,
                    UNIQUE(name, user_id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                    category_id INTEGER
                        REFERENCES categories(id) ON DELETE SET NULL,
                    amount INTEGER NOT NULL CHECK(amount != 0),
                    description TEXT,
                    frequency TEXT NOT NULL CHECK(
                        frequency IN ('daily', 'weekly', 'monthly', 'yearly')
                    ),
                    interval_count INTEGER NOT NULL CHECK(interval_count >= 1),
                    anchor_date TEXT NOT NULL,
                    end_date TEXT,
                    max_occurrences INTEGER CHECK(
                        max_occurrences IS NULL OR max_occurrences >= 1
                    ),
                    active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0, 1)),
                    created_at TEXT NOT NULL
                )
            """)

            # deleted_at marks the terminal Deleted state; the row keeps its
            # (template_id, occurrence_date) slot so it is never regenerated
            conn.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                    category_id INTEGER
                        REFERENCES categories(id) ON DELETE SET NULL,
                    amount INTEGER NOT NULL CHECK(amount != 0),
                    occurred_on TEXT NOT NULL,
                    description TEXT,
                    template_id INTEGER
                        REFERENCES recurring_templates(id) ON DELETE SET NULL,
                    occurrence_date TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    deleted_at TEXT
                )
            """)

            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS ux_transactions_occurrence
                ON transactions(template_id, occurrence_date)
                WHERE template_id IS NOT NULL
            """)

            self._create_indexes(conn)

            logger.debug("Budget ledger schema initialized successfully")

    def _create_indexes(self, conn):
        """Create database indexes for query performance."""
        indexes = [
            ("idx_categories_user_id", "categories", "user_id"),
            ("idx_templates_user_id", "recurring_templates", "user_id"),
            ("idx_transactions_user_id", "transactions", "user_id"),
            ("idx_transactions_user_date", "transactions", "user_id, occurred_on"),
            ("idx_transactions_category_id", "transactions", "category_id"),
        ]

        for index_name, table, columns in indexes:
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS {index_name}
                ON {table}({columns})
            """)
