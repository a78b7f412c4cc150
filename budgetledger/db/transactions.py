"""
Transactions repository module for transaction CRUD operations.

Handles all transaction-related database operations including:
- Creating transactions (manual and generated from templates)
- Reading transactions by id, by date range and by occurrence
- Updating transactions
- Soft-deleting transactions in bulk
"""

import logging
import sqlite3
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from budgetledger.models import Transaction

from .base import BaseRepository

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, user_id, category_id, amount, occurred_on, description, "
    "template_id, occurrence_date, created_at, updated_at"
)


class TransactionRepository(BaseRepository):
    """
    Repository for managing transactions.

    Deleted rows are kept with ``deleted_at`` set and are invisible to every
    read except ``occurrence_dates``.
    """

    def __init__(self, db_path=None, init_schema: bool = False):
        super().__init__(db_path, init_schema=init_schema)

    # =========================================================================
    # Create Operations
    # =========================================================================

    def insert(self, transaction: Transaction) -> Transaction:
        """
        Insert a new transaction.

        Args:
            transaction: The transaction to store (its id is ignored)

        Returns:
            The stored Transaction with id and timestamps set

        Raises:
            sqlite3.IntegrityError: If an instance for the same template and
                occurrence date already exists
        """
        now = datetime.now(timezone.utc)
        created_at = transaction.created_at or now
        updated_at = transaction.updated_at or now

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO transactions (
                        user_id, category_id, amount, occurred_on, description,
                        template_id, occurrence_date, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        transaction.user_id,
                        transaction.category_id,
                        transaction.amount,
                        transaction.occurred_on.isoformat(),
                        transaction.description,
                        transaction.template_id,
                        transaction.occurrence_date.isoformat()
                        if transaction.occurrence_date
                        else None,
                        created_at.isoformat(),
                        updated_at.isoformat(),
                    ),
                )
                transaction_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.debug(
                f"Insert rejected by constraint for user {transaction.user_id} "
                f"(template={transaction.template_id}, "
                f"occurrence={transaction.occurrence_date})"
            )
            raise

        if transaction.template_id is not None:
            logger.info(
                f"Materialized transaction {transaction_id} from template "
                f"{transaction.template_id} on {transaction.occurrence_date} "
                f"for user {transaction.user_id}"
            )
        else:
            logger.info(
                f"Inserted transaction {transaction_id} for user "
                f"{transaction.user_id}: {transaction.amount} on "
                f"{transaction.occurred_on}"
            )

        return Transaction(
            id=transaction_id,
            user_id=transaction.user_id,
            amount=transaction.amount,
            occurred_on=transaction.occurred_on,
            category_id=transaction.category_id,
            description=transaction.description,
            template_id=transaction.template_id,
            occurrence_date=transaction.occurrence_date,
            created_at=created_at,
            updated_at=updated_at,
        )

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get_by_id(self, transaction_id: int, user_id: str) -> Optional[Transaction]:
        """
        Get a live transaction owned by the user.

        Returns:
            Transaction, or None if absent, deleted, or owned by someone else
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM transactions
                WHERE id = ? AND user_id = ? AND deleted_at IS NULL
                """,
                (transaction_id, user_id),
            )
            row = cursor.fetchone()
            return Transaction.from_row(row) if row else None

    def get_occurrence(
        self, template_id: int, occurrence_date: date
    ) -> Optional[Transaction]:
        """Get the live instance generated for a template occurrence, if any."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM transactions
                WHERE template_id = ? AND occurrence_date = ?
                  AND deleted_at IS NULL
                """,
                (template_id, occurrence_date.isoformat()),
            )
            row = cursor.fetchone()
            return Transaction.from_row(row) if row else None

    def query(self, user_id: str, start: date, end: date) -> list[Transaction]:
        """
        Get the user's live transactions with ``start <= occurred_on <= end``.

        Results are ordered by date, then id.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM transactions
                WHERE user_id = ? AND deleted_at IS NULL
                  AND occurred_on >= ? AND occurred_on <= ?
                ORDER BY occurred_on, id
                """,
                (user_id, start.isoformat(), end.isoformat()),
            )
            transactions = [Transaction.from_row(row) for row in cursor.fetchall()]
            logger.debug(
                f"Found {len(transactions)} transactions for user {user_id} "
                f"between {start} and {end}"
            )
            return transactions

    def occurrence_dates(
        self,
        template_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> set[date]:
        """
        Get every occurrence date already materialized for a template.

        Deleted instances are included: their slot stays taken.
        """
        query = "SELECT occurrence_date FROM transactions WHERE template_id = ?"
        params: list = [template_id]
        if start is not None:
            query += " AND occurrence_date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND occurrence_date <= ?"
            params.append(end.isoformat())

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return {date.fromisoformat(row[0]) for row in cursor.fetchall()}

    # =========================================================================
    # Update Operations
    # =========================================================================

    def update(self, transaction: Transaction) -> Optional[Transaction]:
        """
        Write the editable fields of a transaction back.

        Ownership and liveness are checked in the WHERE clause.

        Returns:
            The stored Transaction, or None if not found / deleted / not owned
        """
        updated_at = transaction.updated_at or datetime.now(timezone.utc)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET amount = ?, category_id = ?, occurred_on = ?,
                    description = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND deleted_at IS NULL
                """,
                (
                    transaction.amount,
                    transaction.category_id,
                    transaction.occurred_on.isoformat(),
                    transaction.description,
                    updated_at.isoformat(),
                    transaction.id,
                    transaction.user_id,
                ),
            )
            if cursor.rowcount == 0:
                logger.warning(
                    f"Transaction {transaction.id} not found or "
                    f"not owned by user {transaction.user_id}"
                )
                return None

        logger.info(
            f"Updated transaction {transaction.id} for user {transaction.user_id}: "
            f"amount={transaction.amount}, category={transaction.category_id}, "
            f"date={transaction.occurred_on}"
        )
        return self.get_by_id(transaction.id, transaction.user_id)

    # =========================================================================
    # Delete Operations
    # =========================================================================

    def delete_many(
        self, transaction_ids: Iterable[int], user_id: str
    ) -> list[Transaction]:
        """
        Soft-delete the live transactions among ``transaction_ids`` owned by the user.

        Identifiers that are unknown, already deleted, or owned by someone else
        are ignored.

        Returns:
            The transactions actually deleted, as they were before deletion
        """
        ids = sorted(set(transaction_ids))
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        deleted_at = datetime.now(timezone.utc).isoformat()

        with self._get_connection() as conn:
            # Take the write lock before reading so concurrent deletes count once
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM transactions
                WHERE id IN ({placeholders}) AND user_id = ?
                  AND deleted_at IS NULL
                """,
                (*ids, user_id),
            )
            owned = [Transaction.from_row(row) for row in cursor.fetchall()]
            if owned:
                owned_placeholders = ", ".join("?" for _ in owned)
                conn.execute(
                    f"""
                    UPDATE transactions SET deleted_at = ?
                    WHERE id IN ({owned_placeholders})
                    """,
                    (deleted_at, *(t.id for t in owned)),
                )

        skipped = len(ids) - len(owned)
        if skipped:
            logger.warning(
                f"Skipped {skipped} of {len(ids)} transactions for user {user_id} "
                f"(missing, already deleted, or not owned)"
            )
        logger.info(f"Deleted {len(owned)} transactions for user {user_id}")
        return owned
