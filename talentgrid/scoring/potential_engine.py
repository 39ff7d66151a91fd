"""AAE potential model: Aspiration, Ability, Engagement, each rated 1-3."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from talentgrid.core.exceptions import DataIncompleteError, DomainValidationError
from talentgrid.scoring.utils import round_score

FACTOR_NAMES = ("aspiration", "ability", "engagement")
VALID_FACTOR_LEVELS = (1, 2, 3)


@dataclass(frozen=True)
class PotentialResult:
    aspiration: int
    ability: int
    engagement: int
    average: Decimal
    score: Decimal

    def to_dict(self) -> dict:
        return {
            "aspiration": self.aspiration,
            "ability": self.ability,
            "engagement": self.engagement,
            "average": float(round(self.average, 3)),
            "score": float(self.score),
        }


class PotentialEngine:
    """Rescales the factor average from [1, 3] onto the [1, 5] performance scale."""

    @staticmethod
    def validate_factor(name: str, value) -> int:
        # bool is an int subclass; True must not pass as 1
        if isinstance(value, bool) or not isinstance(value, int) or value not in VALID_FACTOR_LEVELS:
            raise DomainValidationError(
                f"{name} must be one of {VALID_FACTOR_LEVELS}, got {value!r}", field=name
            )
        return value

    @classmethod
    def calculate(
        cls,
        aspiration: Optional[int],
        ability: Optional[int],
        engagement: Optional[int],
    ) -> PotentialResult:
        factors = {"aspiration": aspiration, "ability": ability, "engagement": engagement}
        missing = [name for name, value in factors.items() if value is None]
        if missing:
            raise DataIncompleteError(
                "All three potential factors are required", missing=missing
            )
        for name, value in factors.items():
            cls.validate_factor(name, value)

        average = Decimal(aspiration + ability + engagement) / Decimal(3)
        score = round_score(1 + (average - 1) * 2)
        return PotentialResult(
            aspiration=aspiration,
            ability=ability,
            engagement=engagement,
            average=average,
            score=score,
        )
