"""Conversions between integer minor units and display amounts."""

from decimal import Decimal

from budgetledger.config import MINOR_UNITS_PER_MAJOR

_PLACES = len(str(MINOR_UNITS_PER_MAJOR)) - 1
_QUANTUM = Decimal(1).scaleb(-_PLACES)


def to_major(minor: int) -> Decimal:
    """Convert minor units to an exact major-unit Decimal (12345 -> 123.45)."""
    return (Decimal(minor) / Decimal(MINOR_UNITS_PER_MAJOR)).quantize(_QUANTUM)


def format_amount(minor: int) -> str:
    """Format minor units for display, e.g. -12000 -> "-120.00"."""
    return f"{to_major(minor):,.{_PLACES}f}"
