"""
Stepped discount used for price negotiation at the counter.

Each press of "+" takes up to STEP off the payable total but never skips past
the next lower multiple of ROUND_TO; sitting exactly on a multiple takes a
full STEP. "-" undoes a press by probing ``total + STEP``, so it is not an
exact inverse of "+" for every intermediate state. Keep the formulas as they
are: the counter staff rely on this exact sequence.
"""
from __future__ import annotations

from decimal import Decimal

from gstpos.domain.money import to_decimal

STEP = Decimal(25)
ROUND_TO = Decimal(100)


def _step_for(total: Decimal) -> Decimal:
    remainder = total % ROUND_TO
    return min(STEP, remainder) if remainder > 0 else STEP


def next_discount(subtotal, current_discount) -> Decimal:
    subtotal = to_decimal(subtotal)
    current = to_decimal(current_discount)
    current_total = subtotal - current
    if current_total <= 0:
        return current
    return current + _step_for(current_total)


def prev_discount(subtotal, current_discount) -> Decimal:
    subtotal = to_decimal(subtotal)
    current = to_decimal(current_discount)
    if current <= 0:
        return Decimal(0)
    prev_total = (subtotal - current) + STEP
    if prev_total > subtotal:
        return Decimal(0)
    return max(Decimal(0), current - _step_for(prev_total))


def clamp_discount(amount, subtotal) -> Decimal:
    return max(Decimal(0), min(to_decimal(amount), to_decimal(subtotal)))
