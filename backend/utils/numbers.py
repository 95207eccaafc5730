"""Decimal helpers shared by the ledger and the PnL views.

Amounts, prices and profits are stored with 8 fractional digits. Inputs are
quantized once at the ledger boundary so every later subtraction is exact and
``sum(consumed) + remaining == amount`` holds without drift.
"""

from decimal import ROUND_HALF_EVEN, Decimal

QUANTUM = Decimal("0.00000001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and Decimals to Decimal.

    Floats go through ``str()`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value) -> Decimal:
    """Round to the ledger's 8-decimal precision (banker's rounding)."""
    return to_decimal(value).quantize(QUANTUM, rounding=ROUND_HALF_EVEN)
