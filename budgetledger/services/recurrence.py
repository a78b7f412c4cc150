"""
Recurrence expander.

Turns a recurring template and a date window into the occurrence dates
that should exist inside that window. Expansion is pure: it never stores
anything, so it can be re-run over the same window as often as needed.
Materializing the dates as transactions is the coordinator's job.
"""

import calendar
from datetime import date, timedelta
from typing import AbstractSet, Iterator, Optional

from budgetledger.errors import ValidationError
from budgetledger.models import Frequency, RecurrenceRule, RecurringTemplate


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of short months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def validate_rule(rule: RecurrenceRule):
    """Raise InvalidRuleError if the rule cannot be expanded."""
    rule.validate()


class RecurrenceExpander:
    """
    Expander for recurrence rules.

    The n-th occurrence is always computed from the anchor (never from the
    previous occurrence), so a rule anchored on the 31st lands on the last
    day of shorter months and returns to the 31st afterwards.
    """

    @classmethod
    def occurrence_at(cls, rule: RecurrenceRule, index: int) -> date:
        """Return the date of the ``index``-th occurrence (0 is the anchor)."""
        steps = index * rule.interval
        if rule.frequency == Frequency.DAILY:
            return rule.anchor + timedelta(days=steps)
        if rule.frequency == Frequency.WEEKLY:
            return rule.anchor + timedelta(weeks=steps)
        if rule.frequency == Frequency.MONTHLY:
            return add_months(rule.anchor, steps)
        return add_months(rule.anchor, 12 * steps)

    @classmethod
    def _first_index_on_or_after(cls, rule: RecurrenceRule, day: date) -> int:
        """Smallest occurrence index whose date is on or after ``day``."""
        if day <= rule.anchor:
            return 0

        if rule.frequency in (Frequency.DAILY, Frequency.WEEKLY):
            span = rule.interval * (7 if rule.frequency == Frequency.WEEKLY else 1)
            return -(-(day - rule.anchor).days // span)

        months_per_step = rule.interval * (
            12 if rule.frequency == Frequency.YEARLY else 1
        )
        months_between = (day.year - rule.anchor.year) * 12 + (
            day.month - rule.anchor.month
        )
        # Estimate one step early, then walk forward past clamped days
        index = max(0, months_between // months_per_step - 1)
        while cls.occurrence_at(rule, index) < day:
            index += 1
        return index

    @classmethod
    def expand(
        cls,
        template: RecurringTemplate,
        window_start: date,
        window_end: date,
        existing_occurrence_dates: AbstractSet[date] = frozenset(),
    ) -> Iterator[date]:
        """
        Produce the new occurrence dates of a template inside a window.

        Args:
            template: The recurring template
            window_start: First day of the window (inclusive)
            window_end: Last day of the window (inclusive)
            existing_occurrence_dates: Dates already materialized for this template

        Returns:
            A lazy iterator of dates in ascending order, never outside
            ``[window_start, window_end]`` and never in ``existing_occurrence_dates``

        Raises:
            InvalidRuleError: If the template's rule is malformed
            ValidationError: If ``window_start`` is after ``window_end`` for an
                active template
        """
        # Validate eagerly; a generator would only fail on first iteration
        validate_rule(template.rule)
        if not template.active:
            return iter(())
        if window_start > window_end:
            raise ValidationError(
                f"Window start {window_start} is after window end {window_end}"
            )
        return cls._generate(
            template.rule, window_start, window_end, existing_occurrence_dates
        )

    @classmethod
    def _generate(
        cls,
        rule: RecurrenceRule,
        window_start: date,
        window_end: date,
        existing: AbstractSet[date],
    ) -> Iterator[date]:
        lower = max(window_start, rule.anchor)
        upper = window_end if rule.end_date is None else min(window_end, rule.end_date)
        if lower > upper:
            return

        try:
            index = cls._first_index_on_or_after(rule, lower)
        except (OverflowError, ValueError):
            return
        while rule.max_occurrences is None or index < rule.max_occurrences:
            try:
                day = cls.occurrence_at(rule, index)
            except (OverflowError, ValueError):
                # Ran past the last representable date
                return
            if day > upper:
                return
            if day not in existing:
                yield day
            index += 1

    @classmethod
    def next_occurrence(
        cls, template: RecurringTemplate, on_or_after: date
    ) -> Optional[date]:
        """Return the first occurrence on or after a date, or None if there is none."""
        return next(cls.expand(template, on_or_after, date.max), None)
