from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Quantize a monetary value to cents, rounding half-up."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        # str() first so floats coming back from SQLite aggregates keep their printed value
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def percentage_change(new_value: Decimal, base: Optional[Decimal]) -> Decimal:
    """(new - base) / base * 100 at two decimal places; 0 when base is zero or missing."""
    if not base:
        return ZERO
    return ((new_value - base) / base * 100).quantize(CENTS, rounding=ROUND_HALF_UP)
