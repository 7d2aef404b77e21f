"""Fixed-point currency helpers. Amounts are Decimal with two places."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """Normalize a price/amount to a two-place Decimal (None counts as zero)."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        # Aggregates come back as floats on SQLite
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# Largest value a Numeric(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")
