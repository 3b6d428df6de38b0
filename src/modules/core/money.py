"""Fixed-point money helpers.

All monetary amounts are ``Decimal`` values quantized to two places
(minor units).  Line subtotals are computed from the snapshot price and
then summed, never the other way round, so re-aggregation after an edit
produces the same figure as the original creation.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

CENT = Decimal("0.01")

Numeric = Union[Decimal, int, str]


def to_money(value: Numeric) -> Decimal:
    """Quantize *value* to two decimal places (half-up)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Numeric, quantity: int) -> Decimal:
    return to_money(to_money(unit_price) * quantity)


def money_sum(values: Iterable[Numeric]) -> Decimal:
    total = Decimal("0.00")
    for value in values:
        total += to_money(value)
    return to_money(total)
