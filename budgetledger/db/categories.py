"""
Categories repository module.

Handles category CRUD operations, always scoped to the owning user.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from budgetledger.models import Category

from .base import BaseRepository

logger = logging.getLogger(__name__)

_COLUMNS = "id, user_id, name, kind, budget_target, created_at"


class CategoryRepository(BaseRepository):
    """Repository for managing categories and their budget targets."""

    def __init__(self, db_path=None, init_schema: bool = False):
        super().__init__(db_path, init_schema=init_schema)

    def insert(self, category: Category) -> Category:
        """
        Insert a new category.

        Args:
            category: Category to store (its id is ignored)

        Returns:
            The stored Category with id and created_at set

        Raises:
            sqlite3.IntegrityError: If the user already has a category with this name
        """
        created_at = category.created_at or datetime.now(timezone.utc)
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO categories (
                        user_id, name, kind, budget_target, created_at
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        category.user_id,
                        category.name,
                        category.kind.value,
                        category.budget_target,
                        created_at.isoformat(),
                    ),
                )
                category_id = cursor.lastrowid
                logger.info(
                    f"Created {category.kind.value} category {category_id} "
                    f"'{category.name}' for user {category.user_id}"
                )
                return Category(
                    id=category_id,
                    user_id=category.user_id,
                    name=category.name,
                    kind=category.kind,
                    budget_target=category.budget_target,
                    created_at=created_at,
                )
        except sqlite3.IntegrityError:
            logger.warning(
                f"User {category.user_id} already has a category named "
                f"'{category.name}'"
            )
            raise

    def get_by_id(self, category_id: int, user_id: str) -> Optional[Category]:
        """Get a category owned by the user, or None."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM categories WHERE id = ? AND user_id = ?",
                (category_id, user_id),
            )
            row = cursor.fetchone()
            return Category.from_row(row) if row else None

    def list_for_user(self, user_id: str) -> list[Category]:
        """Get all categories owned by the user, ordered by name."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM categories
                WHERE user_id = ?
                ORDER BY name COLLATE NOCASE, id
                """,
                (user_id,),
            )
            categories = [Category.from_row(row) for row in cursor.fetchall()]
            logger.debug(f"Loaded {len(categories)} categories for user {user_id}")
            return categories

    def update_budget_target(
        self, category_id: int, user_id: str, budget_target: Optional[int]
    ) -> Optional[Category]:
        """
        Set or clear a category's budget target.

        Returns:
            The updated Category, or None if not found / not owned
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE categories SET budget_target = ?
                WHERE id = ? AND user_id = ?
                """,
                (budget_target, category_id, user_id),
            )
            if cursor.rowcount == 0:
                logger.warning(
                    f"Category {category_id} not found or not owned by user {user_id}"
                )
                return None
            logger.info(
                f"Set budget target of category {category_id} to {budget_target} "
                f"for user {user_id}"
            )
        return self.get_by_id(category_id, user_id)
