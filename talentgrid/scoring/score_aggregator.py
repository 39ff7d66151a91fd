"""
Multi-rater score aggregation.

Per-role score = mean of that role's assignment means, where an assignment's
mean is taken over its parsable numeric responses. The overall score is the
weighted mean of per-role scores, with the configured weights renormalized
over the roles that actually have data.
"""
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from talentgrid.core.exceptions import DataIncompleteError
from talentgrid.scoring.config import RATER_ROLES, RatingConfig
from talentgrid.scoring.utils import mean, round_score, to_decimal

logger = logging.getLogger(__name__)

COMPLETED = "completed"


@dataclass
class AssignmentInput:
    """Boundary shape consumed by the aggregator; ORM assignments satisfy it too."""

    rater_role: str
    responses: Sequence[Any] = field(default_factory=list)
    status: str = COMPLETED


@dataclass
class AggregationResult:
    score: Decimal
    level: str
    role_scores: Dict[str, Decimal]
    effective_weights: Dict[str, Decimal]
    total_evaluations: int
    completed_evaluations: int

    @property
    def completeness(self) -> Decimal:
        return completeness(self.completed_evaluations, self.total_evaluations)

    def to_dict(self) -> dict:
        return {
            "score": float(self.score),
            "level": self.level,
            "role_scores": {k: float(v) for k, v in self.role_scores.items()},
            "effective_weights": {k: float(v) for k, v in self.effective_weights.items()},
            "evaluation_completeness": float(self.completeness),
            "total_evaluations": self.total_evaluations,
            "completed_evaluations": self.completed_evaluations,
        }


def completeness(completed: int, total: int) -> Decimal:
    if total <= 0:
        return Decimal(0)
    return round_score(Decimal(completed) * 100 / Decimal(total))


def parse_response(value: Any) -> Optional[Decimal]:
    """Return the numeric value of a response item, or None when it cannot be scored."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = to_decimal(value)
        return number if number.is_finite() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return to_decimal(text) if math.isfinite(number) else None
    if isinstance(value, dict):
        # survey storage sometimes wraps answers as {"value": 4}
        return parse_response(value.get("value", value.get("score")))
    return None


class ScoreAggregator:
    """Combine completed evaluations into one calculated score and level."""

    def __init__(self, config: RatingConfig) -> None:
        self.config = config

    def assignment_mean(self, responses: Iterable[Any]) -> Optional[Decimal]:
        lo, hi = to_decimal(self.config.scale_min), to_decimal(self.config.scale_max)
        values = []
        for raw in responses or []:
            value = parse_response(raw)
            if value is None:
                continue
            if value < lo or value > hi:
                logger.debug("Skipping out-of-scale response", extra={"value": str(value)})
                continue
            values.append(value)
        return mean(values)

    def role_scores(
        self,
        assignments: Iterable[Any],
        participating_roles: Optional[Iterable[str]] = None,
        min_subordinates: int = 1,
    ) -> Dict[str, Decimal]:
        roles = set(participating_roles) if participating_roles is not None else set(RATER_ROLES)
        per_role: Dict[str, List[Decimal]] = {}
        for assignment in assignments:
            if assignment.status != COMPLETED or assignment.rater_role not in roles:
                continue
            assignment_mean = self.assignment_mean(assignment.responses)
            # an assignment without usable answers carries no weight
            if assignment_mean is None:
                continue
            per_role.setdefault(assignment.rater_role, []).append(assignment_mean)

        upward = per_role.get("upward")
        if upward is not None and len(upward) < max(min_subordinates, 1):
            logger.info(
                "Upward feedback below anonymity threshold, excluded",
                extra={"responses": len(upward), "min_subordinates": min_subordinates},
            )
            del per_role["upward"]

        return {role: mean(values) for role, values in per_role.items()}

    def effective_weights(self, present_roles: Iterable[str]) -> Dict[str, Decimal]:
        """Renormalize configured weights over the roles that have data; result sums to 1."""
        configured = {
            role: to_decimal(self.config.weights.get(role, 0))
            for role in present_roles
        }
        configured = {role: w for role, w in configured.items() if w > 0}
        total = sum(configured.values(), Decimal(0))
        if total <= 0:
            return {}
        return {role: w / total for role, w in configured.items()}

    def aggregate(
        self,
        assignments: Iterable[Any],
        participating_roles: Optional[Iterable[str]] = None,
        min_subordinates: int = 1,
    ) -> AggregationResult:
        """
        Args:
            assignments: objects exposing rater_role, responses and status.
            participating_roles: roles enabled for the cycle, all roles when None.
            min_subordinates: upward feedback needs at least this many completed assignments.

        Raises:
            DataIncompleteError: no weighted role has data; the rating stays pending.
        """
        assignments = list(assignments)
        total = len(assignments)
        completed = sum(1 for a in assignments if a.status == COMPLETED)

        scores = self.role_scores(assignments, participating_roles, min_subordinates)
        weights = self.effective_weights(scores.keys())
        if not weights:
            raise DataIncompleteError(
                "No rater role has scorable evaluations yet",
                missing=[r for r in RATER_ROLES if r not in scores],
            )

        weighted = sum((scores[role] * w for role, w in weights.items()), Decimal(0))
        score = round_score(weighted)
        return AggregationResult(
            score=score,
            level=self.config.level_for_score(score),
            role_scores={role: round_score(value) for role, value in scores.items()},
            effective_weights=weights,
            total_evaluations=total,
            completed_evaluations=completed,
        )
