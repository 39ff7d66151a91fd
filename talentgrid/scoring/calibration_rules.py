"""
Consistency checks run when a calibration adjustment moves someone across the grid.

Rules only warn; they never block the adjustment.
"""
import enum
from dataclasses import dataclass
from typing import List, Optional

from talentgrid.scoring.nine_box import NineBoxClassifier, NineBoxPosition, default_classifier


class Severity(str, enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


_SEVERITY_ORDER = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}

HIGH_POTENTIAL_QUADRANTS = {7, 8, 9}
HIGH_PERFORMANCE_QUADRANTS = {3, 6, 9}
RISK_QUADRANT = 1
STAR_QUADRANT = 9
MASSIVE_JUMP_STEPS = 3


@dataclass(frozen=True)
class RuleWarning:
    code: str
    severity: Severity
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code, "severity": self.severity.value, "message": self.message}


@dataclass(frozen=True)
class MoveContext:
    from_position: NineBoxPosition
    to_position: NineBoxPosition
    is_downgrade: bool
    aspiration: Optional[int] = None
    ability: Optional[int] = None
    engagement: Optional[int] = None


def evaluate_move(context: MoveContext, classifier: NineBoxClassifier = default_classifier) -> List[RuleWarning]:
    """Return triggered warnings, most severe first."""
    source = classifier.quadrant_number(context.from_position)
    target = classifier.quadrant_number(context.to_position)
    if target is None:
        if None in (context.aspiration, context.ability, context.engagement):
            return [RuleWarning(
                "MISSING_AAE_DATA", Severity.INFO,
                "Potential factors are missing, grid placement cannot be checked.",
            )]
        return []
    if source == target:
        return []

    warnings: List[RuleWarning] = []

    if target == RISK_QUADRANT:
        warnings.append(RuleWarning(
            "MOVE_TO_RISK_QUADRANT", Severity.CRITICAL,
            "Moving to the risk quadrant requires a documented performance plan.",
        ))
    if target in HIGH_POTENTIAL_QUADRANTS and context.aspiration == 1:
        warnings.append(RuleWarning(
            "HIGH_POTENTIAL_LOW_ASPIRATION", Severity.CRITICAL,
            "High-potential placement with the lowest aspiration rating.",
        ))
    if target == STAR_QUADRANT and context.engagement == 1:
        warnings.append(RuleWarning(
            "TOP_TALENT_LOW_ENGAGEMENT", Severity.CRITICAL,
            "Star placement with the lowest engagement rating.",
        ))
    if target in (8, 9) and context.ability == 1:
        warnings.append(RuleWarning(
            "HIGH_POTENTIAL_LOW_ABILITY", Severity.WARNING,
            "Growth or star placement with the lowest ability rating.",
        ))
    if target in HIGH_PERFORMANCE_QUADRANTS and context.ability == 1:
        warnings.append(RuleWarning(
            "HIGH_PERFORMANCE_LOW_ABILITY", Severity.WARNING,
            "High-performance placement with the lowest ability rating.",
        ))
    if context.is_downgrade and context.engagement == 3:
        warnings.append(RuleWarning(
            "DOWNGRADE_HIGH_ENGAGEMENT", Severity.WARNING,
            "Downgrading an employee rated highly engaged.",
        ))
    if source is not None:
        src, dst = classifier.coordinates(context.from_position), classifier.coordinates(context.to_position)
        steps = abs(src[0] - dst[0]) + abs(src[1] - dst[1])
        if steps >= MASSIVE_JUMP_STEPS:
            warnings.append(RuleWarning(
                "MASSIVE_JUMP", Severity.WARNING,
                f"Move spans {steps} grid steps.",
            ))

    return sorted(warnings, key=lambda w: _SEVERITY_ORDER[w.severity])
