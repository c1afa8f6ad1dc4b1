from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

"""
Fixed-point helpers for inventory quantities (grams) and money.

All stored quantities and amounts are Numeric(12, 2). Arithmetic happens on
Decimal values quantized to two places with half-up rounding, so a "set to X"
request always becomes delta = round(X - current, 2) with no float drift.
"""

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


class QuantityRangeError(ValueError):
    """Too many digits to hold at two places."""


def quantize(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a JSON/DB value into a 2-place Decimal.

    Floats go through str() first so 0.1 stays 0.10 instead of
    0.1000000000000000055511151231257827.
    Raises ValueError for anything that isn't a finite number, and
    QuantityRangeError (a ValueError) when it is too large to quantize.
    """
    if value is None:
        raise ValueError("value is required")
    if isinstance(value, bool):
        raise ValueError("value must be a number")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float)):
        d = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("value must be a number")
        try:
            d = Decimal(stripped)
        except InvalidOperation:
            raise ValueError("value must be a number")
    else:
        raise ValueError("value must be a number")

    if not d.is_finite():
        raise ValueError("value must be a finite number")
    try:
        return quantize(d)
    except InvalidOperation:
        raise QuantityRangeError("value is out of range")


def signed(value: Decimal) -> str:
    """Render with an explicit sign: +5.00, -2.50, 0.00."""
    if value == 0:
        return format(ZERO, "f")
    return format(value, "+f")


def to_json_number(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(quantize(Decimal(value)))
