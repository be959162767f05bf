from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Converte int/float/str/Decimal/None em Decimal sem herdar ruído de float."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid monetary value: {value!r}") from exc


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def mul2(amount, quantity) -> Decimal:
    return round2(to_decimal(amount) * to_decimal(quantity))


def sum2(values: Iterable) -> Decimal:
    total = ZERO
    for value in values:
        total = round2(total + to_decimal(value))
    return total


def percent_of(amount, percentage) -> Decimal:
    return round2(to_decimal(amount) * to_decimal(percentage) / HUNDRED)


def clamp_percentage(value) -> Decimal:
    pct = to_decimal(value)
    if pct < 0:
        return Decimal("0")
    if pct > HUNDRED:
        return HUNDRED
    return pct
