"""
Tenant rating configuration.

A RatingConfig is an immutable value object handed to each engine call so that
one engine instance can serve several accounts with different settings.
Invalid configuration is rejected, never clamped.
"""
import math
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from talentgrid.core.exceptions import DomainValidationError
from talentgrid.scoring.utils import to_decimal

RATER_ROLES = ("self", "manager", "upward", "peer")

NINE_BOX_POSITIONS = (
    "star",
    "growth_potential",
    "potential_gem",
    "high_performer",
    "core_player",
    "inconsistent",
    "trusted_professional",
    "average_performer",
    "underperformer",
)

DEFAULT_WEIGHTS: Dict[str, float] = {"self": 0.2, "manager": 0.5, "upward": 0.15, "peer": 0.15}

# Named weight profiles offered to administrators
WEIGHT_PRESETS: Dict[str, Dict[str, float]] = {
    "manager_heavy": DEFAULT_WEIGHTS,
    "balanced": {"self": 0.25, "manager": 0.25, "upward": 0.25, "peer": 0.25},
    "enterprise": {"self": 0.15, "manager": 0.40, "upward": 0.15, "peer": 0.30},
}

DEFAULT_BONUS_FACTORS: Dict[str, float] = {
    "star": 1.25,
    "high_performer": 1.10,
    "growth_potential": 1.10,
    "potential_gem": 1.10,
    "core_player": 1.00,
    "trusted_professional": 1.00,
    "average_performer": 0.75,
    "inconsistent": 0.75,
    "underperformer": 0.0,
}

MIN_BANDS = 3
MAX_BANDS = 7


class ScoreBand(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    level: str = Field(min_length=1)
    label: str
    min_score: float


class AxisThresholds(BaseModel):
    """Two cut points per axis: below medium is low, at or above high is high."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    medium: float
    high: float

    @model_validator(mode="after")
    def _ordered(self):
        if not self.medium < self.high:
            raise ValueError("medium threshold must be strictly below high threshold")
        return self


DEFAULT_BANDS: Tuple[ScoreBand, ...] = (
    ScoreBand(level="needs_improvement", label="Needs Improvement", min_score=0.0),
    ScoreBand(level="developing", label="Developing", min_score=2.5),
    ScoreBand(level="meets_expectations", label="Meets Expectations", min_score=3.5),
    ScoreBand(level="exceeds_expectations", label="Exceeds Expectations", min_score=4.0),
    ScoreBand(level="exceptional", label="Exceptional", min_score=4.5),
)


class RatingConfig(BaseModel):
    # NaN would slip past the ordering checks below
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    scale_min: float = 0.0
    scale_max: float = 5.0
    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    bands: Tuple[ScoreBand, ...] = DEFAULT_BANDS
    performance_axis: AxisThresholds = AxisThresholds(medium=3.0, high=4.0)
    potential_axis: AxisThresholds = AxisThresholds(medium=3.0, high=4.0)
    bonus_factors: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_BONUS_FACTORS))
    min_justification_length: int = Field(default=10, ge=1)
    justification_display_limit: int = Field(default=280, ge=20)
    distribution_tolerance: float = Field(default=5.0, ge=0, le=100)

    @field_validator("weights")
    @classmethod
    def _validate_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        unknown = set(value) - set(RATER_ROLES)
        if unknown:
            raise ValueError(f"unknown rater roles: {sorted(unknown)}")
        if not all(math.isfinite(w) for w in value.values()):
            raise ValueError("weights must be finite numbers")
        if any(w < 0 for w in value.values()):
            raise ValueError("weights must be non-negative")
        if sum(value.values()) <= 0:
            raise ValueError("weights must sum to a positive total")
        return value

    @field_validator("bonus_factors")
    @classmethod
    def _validate_bonus(cls, value: Dict[str, float]) -> Dict[str, float]:
        missing = set(NINE_BOX_POSITIONS) - set(value)
        if missing:
            raise ValueError(f"bonus factor missing for positions: {sorted(missing)}")
        unknown = set(value) - set(NINE_BOX_POSITIONS)
        if unknown:
            raise ValueError(f"unknown nine-box positions: {sorted(unknown)}")
        if not all(math.isfinite(f) for f in value.values()):
            raise ValueError("bonus factors must be finite numbers")
        if any(f < 0 for f in value.values()):
            raise ValueError("bonus factors must be non-negative")
        return value

    @model_validator(mode="after")
    def _validate_scale(self):
        if not self.scale_min < self.scale_max:
            raise ValueError("scale_min must be below scale_max")

        bands = list(self.bands)
        if not MIN_BANDS <= len(bands) <= MAX_BANDS:
            raise ValueError(f"bands: between {MIN_BANDS} and {MAX_BANDS} bands are required")
        if bands[0].min_score != self.scale_min:
            raise ValueError("bands: lowest band must start at scale_min")
        for lower, upper in zip(bands, bands[1:]):
            if not lower.min_score < upper.min_score:
                raise ValueError("bands: boundaries must be strictly increasing")
        if bands[-1].min_score >= self.scale_max:
            raise ValueError("bands: highest band must start below scale_max")
        if len({b.level for b in bands}) != len(bands):
            raise ValueError("bands: level keys must be unique")

        for name in ("performance_axis", "potential_axis"):
            axis = getattr(self, name)
            if not (self.scale_min < axis.medium and axis.high <= self.scale_max):
                raise ValueError(f"{name}: thresholds must lie inside the scale")
        return self

    # --- derived helpers -------------------------------------------------

    @property
    def levels(self) -> List[str]:
        return [b.level for b in self.bands]

    def check_in_scale(self, score, field: str = "score") -> Decimal:
        value = to_decimal(score)
        if not value.is_finite():
            raise DomainValidationError(f"{field} must be a finite number", field=field)
        if value < to_decimal(self.scale_min) or value > to_decimal(self.scale_max):
            raise DomainValidationError(
                f"{field} {score} is outside the valid scale {self.scale_min}-{self.scale_max}",
                field=field,
            )
        return value

    def level_for_score(self, score) -> str:
        """
        Map a score onto the band table.

        Bands are inclusive on the lower bound and exclusive on the upper one;
        the top band is closed at scale_max.
        """
        value = self.check_in_scale(score)
        for band in reversed(self.bands):
            if value >= to_decimal(band.min_score):
                return band.level
        # unreachable: the first band starts at scale_min
        return self.bands[0].level

    def label_for_level(self, level: Optional[str]) -> Optional[str]:
        for band in self.bands:
            if band.level == level:
                return band.label
        return None

    def with_weights(self, weights: Optional[Dict[str, float]]) -> "RatingConfig":
        """Return a copy with the weights replaced, re-running validation."""
        if not weights:
            return self
        return load_rating_config({**self.model_dump(), "weights": weights})


DEFAULT_RATING_CONFIG = RatingConfig()


def _field_from_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "config"
    loc = [str(part) for part in errors[0].get("loc", ())]
    if loc:
        return ".".join(loc)
    # model-level validators prefix the message with the field name
    msg = errors[0].get("msg", "")
    head = msg.split(":", 1)[0].replace("Value error, ", "").strip()
    return head if head and " " not in head else "config"


def load_rating_config(data: Optional[dict] = None) -> RatingConfig:
    """Validate raw configuration, raising DomainValidationError that names the offending field."""
    try:
        return RatingConfig.model_validate(data or {})
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        raise DomainValidationError(
            f"Invalid rating configuration: {first.get('msg', str(exc))}",
            field=_field_from_error(exc),
        ) from exc
