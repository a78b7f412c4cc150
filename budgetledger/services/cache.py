"""
Aggregate cache.

Explicit cache of derived aggregates keyed by ``(user_id, category_key,
period)``. Transactions stay the source of truth; every write that touches
a transaction invalidates the entries whose category and period cover it.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from budgetledger.models import Period

from .aggregator import Aggregate, CategoryKey

logger = logging.getLogger(__name__)

CacheKey = tuple[str, CategoryKey, Period]


class AggregateCache:
    """
    Cache of per-category aggregates.

    A period is only served from the cache when it was stored as a whole,
    so a partially invalidated period is always recomputed. Every
    invalidation bumps the user's generation; aggregates computed from a
    read taken before the bump are not stored.
    """

    def __init__(self):
        self._entries: dict[CacheKey, Aggregate] = {}
        # Category keys stored for each (user, period)
        self._periods: dict[tuple[str, Period], tuple] = {}
        self._generations: dict[str, int] = {}

    def generation(self, user_id: str) -> int:
        """Current invalidation counter for a user."""
        return self._generations.get(user_id, 0)

    def _bump(self, user_id: str):
        self._generations[user_id] = self.generation(user_id) + 1

    def _drop_period(self, user_id: str, period: Period):
        self._periods.pop((user_id, period), None)
        for key in [k for k in self._entries if k[0] == user_id and k[2] == period]:
            del self._entries[key]

    def get_period(
        self, user_id: str, period: Period
    ) -> Optional[dict[CategoryKey, Aggregate]]:
        """Return the cached aggregates for a period, or None on a miss."""
        keys = self._periods.get((user_id, period))
        if keys is None:
            return None
        try:
            return {key: self._entries[(user_id, key, period)] for key in keys}
        except KeyError:
            # Some category was invalidated since the period was stored
            self._drop_period(user_id, period)
            return None

    def put_period(
        self,
        user_id: str,
        period: Period,
        aggregates: dict[CategoryKey, Aggregate],
        generation: Optional[int] = None,
    ) -> bool:
        """
        Store a period's aggregates.

        When ``generation`` is given and the user's cache was invalidated
        since it was read, nothing is stored. Returns whether the period
        was stored.
        """
        if generation is not None and generation != self.generation(user_id):
            logger.debug(
                f"Skipped caching {period.label} for user {user_id}: "
                f"invalidated while it was computed"
            )
            return False
        self._drop_period(user_id, period)
        for key, agg in aggregates.items():
            self._entries[(user_id, key, period)] = agg
        # Preserve the aggregator's ordering on the way back out
        self._periods[(user_id, period)] = tuple(aggregates)
        logger.debug(
            f"Cached {len(aggregates)} aggregates for user {user_id} "
            f"period {period.label}"
        )
        return True

    def invalidate(self, user_id: str, category_key: CategoryKey, day: date) -> int:
        """
        Drop every cached period of this user that contains ``day`` and
        holds, or should now hold, ``category_key``. Returns the number of
        entries dropped for that category.
        """
        self._bump(user_id)
        stale = [
            key
            for key in self._entries
            if key[0] == user_id and key[1] == category_key and key[2].contains(day)
        ]
        for key in stale:
            self._drop_period(user_id, key[2])
        # A period cached without this category would now be missing it
        for user, period in list(self._periods):
            if user == user_id and period.contains(day):
                if category_key not in self._periods[(user, period)]:
                    self._drop_period(user, period)
        if stale:
            logger.debug(
                f"Invalidated {len(stale)} cached aggregates for user {user_id} "
                f"category {category_key} on {day}"
            )
        return len(stale)

    def invalidate_category(self, user_id: str, category_key: CategoryKey) -> int:
        """Drop every cached period holding a category (e.g. its target changed)."""
        self._bump(user_id)
        stale = [k for k in self._entries if k[0] == user_id and k[1] == category_key]
        for key in stale:
            self._drop_period(user_id, key[2])
        return len(stale)

    def invalidate_user(self, user_id: str, periods: Optional[Iterable[Period]] = None):
        """Drop a user's cached periods (all of them when ``periods`` is None)."""
        self._bump(user_id)
        wanted = None if periods is None else set(periods)
        for key in [k for k in self._periods if k[0] == user_id]:
            if wanted is None or key[1] in wanted:
                self._drop_period(user_id, key[1])
        for key in [k for k in self._entries if k[0] == user_id]:
            if wanted is None or key[2] in wanted:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
