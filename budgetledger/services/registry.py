"""
Category registry.

In-memory view of one user's categories and their budget targets, used to
validate transactions and to drive aggregation.
"""

import logging
from typing import Iterable, Iterator, Optional

from budgetledger.errors import ValidationError
from budgetledger.models import Category, check_sign

logger = logging.getLogger(__name__)


class CategoryRegistry:
    """The set of valid categories for a user, keyed by identifier."""

    def __init__(self, categories: Iterable[Category] = ()):
        self._categories: dict[int, Category] = {}
        for category in categories:
            self.register(category)

    def register(self, category: Category) -> Category:
        """
        Add a category to the registry.

        Raises:
            ValidationError: If the identifier is missing or already registered,
                or the category breaks an invariant
        """
        if category.id is None:
            raise ValidationError("Only stored categories can be registered")
        if category.id in self._categories:
            raise ValidationError(f"Duplicate category id: {category.id}")
        category.validate()
        self._categories[category.id] = category
        return category

    def resolve(self, category_id: Optional[int]) -> Optional[Category]:
        """
        Resolve a transaction's category reference.

        None means unassigned. A reference that does not resolve is a
        validation failure, not a missing record.
        """
        if category_id is None:
            return None
        category = self._categories.get(category_id)
        if category is None:
            raise ValidationError(f"Unknown category: {category_id}")
        return category

    def check_amount(self, category_id: Optional[int], amount: int):
        """Raise ValidationError if the amount does not fit the category."""
        check_sign(amount, self.resolve(category_id))

    def __contains__(self, category_id) -> bool:
        return category_id in self._categories

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)
