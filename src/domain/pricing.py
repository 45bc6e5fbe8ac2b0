# src/domain/pricing.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CURRENCY_PRECISION = Decimal("0.01")
_ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce hours or rate into a Decimal.
    Missing, blank or non-numeric values count as zero.
    """
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return _ZERO
    if not result.is_finite():
        return _ZERO
    return result


def calculate_total_cost(hours: Any, rate: Any) -> Decimal:
    """
    Total cost of a booking: hours x hourly rate, in currency precision.
    Never raises; a booking with no rate completes at zero cost.
    """
    total = to_decimal(hours) * to_decimal(rate)
    return total.quantize(CURRENCY_PRECISION, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    # Payment processors take integer pence.
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
