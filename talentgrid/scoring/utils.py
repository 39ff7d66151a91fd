"""Decimal helpers shared by the scoring engines."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

ONE_PLACE = Decimal("0.1")


def to_decimal(value) -> Decimal:
    """Convert a number to Decimal through its string form so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_score(value, places: Decimal = ONE_PLACE) -> Decimal:
    """Round half-up to one decimal place (3.75 -> 3.8, never banker's rounding)."""
    return to_decimal(value).quantize(places, rounding=ROUND_HALF_UP)


def mean(values: Iterable[Decimal]) -> Optional[Decimal]:
    values = list(values)
    if not values:
        return None
    return sum(values, Decimal(0)) / Decimal(len(values))
