"""
Fixed-point money helpers.

Money is a Decimal everywhere. Rounding to cents (half-up) happens only when a
value becomes something shown or charged: unit prices, tax, shipping, totals.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from pydantic import PlainSerializer

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def D(value) -> Decimal:
    """Decimal from int/str/float without binary float drift."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round2(value) -> Decimal:
    return D(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value) -> int:
    """Charge amount for the payment gateway."""
    return int(round2(value) * 100)


# JSON renders money as a number; Python keeps the Decimal.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(round2(v)), return_type=float, when_used="json"),
]
