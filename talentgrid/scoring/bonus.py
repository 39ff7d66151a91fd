"""Bonus-factor multipliers derived from nine-box positions. Never persisted."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from talentgrid.scoring.config import RatingConfig
from talentgrid.scoring.nine_box import NineBoxPosition
from talentgrid.scoring.utils import mean, to_decimal

FOUR_PLACES = Decimal("0.0001")


def bonus_multiplier(position, config: RatingConfig) -> Optional[Decimal]:
    position = NineBoxPosition(position)
    if position == NineBoxPosition.UNCLASSIFIED:
        return None
    return to_decimal(config.bonus_factors[position.value])


def aggregate_bonus_factor(positions: Iterable, config: RatingConfig) -> Optional[Decimal]:
    """Simple mean over classified positions; None when nobody is classified."""
    multipliers = [m for m in (bonus_multiplier(p, config) for p in positions) if m is not None]
    result = mean(multipliers)
    if result is None:
        return None
    return result.quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)
