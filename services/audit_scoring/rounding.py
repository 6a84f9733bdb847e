"""
Rounding helpers.

Scores are stored with two decimals and rounded half away from zero,
so 83.335 becomes 83.34 rather than the banker's-rounding 83.33.
"""

from decimal import ROUND_HALF_UP, Decimal


_TWO_PLACES = Decimal("0.01")


def round2(value: float) -> float:
    """Round to two decimals, half up."""
    return float(Decimal(str(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def round_percent(part: int, whole: int) -> int:
    """Whole-number percentage of part over whole; 0 when whole is 0."""
    if whole == 0:
        return 0
    return int(Decimal(part * 100) / Decimal(whole) + Decimal("0.5"))
