from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

Money = Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round2(value: Decimal) -> Decimal:
    """Round to the nearest cent, halves away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: object) -> Decimal:
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a money amount")
    if isinstance(value, float):
        # str() keeps 0.1 as 0.1 instead of its binary expansion
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a number: {value!r}") from e


def to_money(value: object) -> Decimal:
    return round2(to_decimal(value))
