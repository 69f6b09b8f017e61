"""
Fixed-precision money and quantity helpers.

Every money-producing calculation routes its final value through round2()
so that many small multiplications never accumulate float drift. Quantities
drained by weighted-average costing can be fractional and are kept at four
decimal places to match the batch ledger columns.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
QUANTITY_QUANT = Decimal("0.0001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Coerce int/str/float/Decimal/None to Decimal (floats go through str)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value) -> Decimal:
    """Round half-up on the cent boundary."""
    return to_decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def round_quantity(value) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)


def apply_rate(amount, rate_percent) -> Decimal:
    """amount x rate / 100, rounded to cents."""
    return round2(to_decimal(amount) * to_decimal(rate_percent) / HUNDRED)


def format_money(value) -> str:
    amount = round2(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
