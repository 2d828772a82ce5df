"""Monetary rounding helpers.

Amounts are plain floats with two meaningful decimals. Rounding goes through
Decimal so 1.005 rounds to 1.01 (half-up) instead of drifting on binary floats.
"""

from decimal import Decimal, ROUND_HALF_UP

_CENT = Decimal("0.01")

# Derived amounts may differ from their recomputed value by less than this.
MONEY_TOLERANCE = Decimal("0.01")


def to_decimal(amount: float | int | Decimal) -> Decimal:
    """Rounded Decimal with two places."""
    if isinstance(amount, Decimal):
        value = amount
    else:
        value = Decimal(str(amount))
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round_money(amount: float | int | Decimal) -> float:
    """Round to 2 decimals, half-up."""
    return float(to_decimal(amount))


def amounts_match(expected: float | int | Decimal, provided: float | int | Decimal) -> bool:
    """True when both amounts agree after rounding, within the 1-cent tolerance."""
    return abs(to_decimal(expected) - to_decimal(provided)) < MONEY_TOLERANCE
