"""Decimal helpers for monetary values"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a number (or numeric string) to a Decimal rounded half-up to cents"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def split_down(amount: Decimal, parts: int) -> Decimal:
    """Share of amount per part, rounded down to the cent"""
    return (amount / parts).quantize(CENT, rounding=ROUND_DOWN)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return to_money(amount * percent / Decimal(100))
