"""
Recurring templates repository module.

Stores recurring-transaction templates. Generation of concrete instances
is not done here; see the recurrence expander and the ledger coordinator.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from budgetledger.models import RecurringTemplate

from .base import BaseRepository

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, user_id, category_id, amount, description, frequency, interval_count, "
    "anchor_date, end_date, max_occurrences, active, created_at"
)


class TemplateRepository(BaseRepository):
    """Repository for recurring-transaction templates."""

    def __init__(self, db_path=None, init_schema: bool = False):
        super().__init__(db_path, init_schema=init_schema)

    def insert(self, template: RecurringTemplate) -> RecurringTemplate:
        """Insert a template and return it with id and created_at set."""
        created_at = template.created_at or datetime.now(timezone.utc)
        rule = template.rule
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO recurring_templates (
                    user_id, category_id, amount, description, frequency,
                    interval_count, anchor_date, end_date, max_occurrences,
                    active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    template.user_id,
                    template.category_id,
                    template.amount,
                    template.description,
                    rule.frequency.value,
                    rule.interval,
                    rule.anchor.isoformat(),
                    rule.end_date.isoformat() if rule.end_date else None,
                    rule.max_occurrences,
                    1 if template.active else 0,
                    created_at.isoformat(),
                ),
            )
            template_id = cursor.lastrowid
            logger.info(
                f"Created {rule.frequency.value} template {template_id} "
                f"(every {rule.interval}, from {rule.anchor}) "
                f"for user {template.user_id}"
            )
        return RecurringTemplate(
            id=template_id,
            user_id=template.user_id,
            amount=template.amount,
            rule=rule,
            category_id=template.category_id,
            description=template.description,
            active=template.active,
            created_at=created_at,
        )

    def get_by_id(self, template_id: int, user_id: str) -> Optional[RecurringTemplate]:
        """Get a template owned by the user, or None."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM recurring_templates
                WHERE id = ? AND user_id = ?
                """,
                (template_id, user_id),
            )
            row = cursor.fetchone()
            return RecurringTemplate.from_row(row) if row else None

    def list_for_user(
        self, user_id: str, active_only: bool = False
    ) -> list[RecurringTemplate]:
        """Get the user's templates, optionally only the active ones."""
        query = f"SELECT {_COLUMNS} FROM recurring_templates WHERE user_id = ?"
        if active_only:
            query += " AND active = 1"
        query += " ORDER BY anchor_date, id"

        with self._get_connection() as conn:
            cursor = conn.execute(query, (user_id,))
            templates = [RecurringTemplate.from_row(row) for row in cursor.fetchall()]
            logger.debug(
                f"Loaded {len(templates)} templates for user {user_id} "
                f"(active_only={active_only})"
            )
            return templates

    def set_active(
        self, template_id: int, user_id: str, active: bool
    ) -> Optional[RecurringTemplate]:
        """Activate or deactivate a template. Returns None if not found / not owned."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE recurring_templates SET active = ?
                WHERE id = ? AND user_id = ?
                """,
                (1 if active else 0, template_id, user_id),
            )
            if cursor.rowcount == 0:
                logger.warning(
                    f"Template {template_id} not found or not owned by user {user_id}"
                )
                return None
            logger.info(
                f"{'Activated' if active else 'Deactivated'} template {template_id} "
                f"for user {user_id}"
            )
        return self.get_by_id(template_id, user_id)

    def update(self, template: RecurringTemplate) -> Optional[RecurringTemplate]:
        """
        Write a template's amount, category and description back.

        The recurrence rule is not editable. Instances already generated keep
        their values.

        Returns:
            The stored template, or None if not found / not owned
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE recurring_templates
                SET amount = ?, category_id = ?, description = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    template.amount,
                    template.category_id,
                    template.description,
                    template.id,
                    template.user_id,
                ),
            )
            if cursor.rowcount == 0:
                logger.warning(
                    f"Template {template.id} not found or not owned by user "
                    f"{template.user_id}"
                )
                return None
            logger.info(
                f"Updated template {template.id} for user {template.user_id}: "
                f"amount={template.amount}, category={template.category_id}"
            )
        return self.get_by_id(template.id, template.user_id)
