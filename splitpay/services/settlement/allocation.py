"""Money helpers: commission and proportional refund allocation.

Rounding is half-up to the cent.  When a refund is spread across several
sales, the last sale absorbs whatever residual cent the per-sale rounding
leaves so the parts always sum to the requested amount.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def commission_for(amount: Decimal, rate: Decimal) -> Decimal:
    """``amount * rate / 100`` rounded to the cent."""
    return to_money(Decimal(amount) * Decimal(rate) / Decimal(100))


def allocate_refund(requested: Decimal, amounts: Sequence[Decimal]) -> list[Decimal]:
    """Split ``requested`` across ``amounts`` in proportion to each.

    >>> allocate_refund(Decimal("50"), [Decimal("30"), Decimal("70")])
    [Decimal('15.00'), Decimal('35.00')]
    """
    if not amounts:
        return []
    requested = to_money(requested)
    if len(amounts) == 1:
        return [requested]

    total = sum((Decimal(a) for a in amounts), Decimal("0"))
    if total <= 0:
        raise ValueError("Cannot allocate a refund across sales totalling zero")

    parts = [to_money(requested * Decimal(a) / total) for a in amounts[:-1]]
    parts.append(requested - sum(parts, Decimal("0")))
    return parts
