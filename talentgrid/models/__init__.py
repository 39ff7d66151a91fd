# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import cycle, rating, calibration, rating_config, audit_log

# Explicit class exports for cleaner imports
from .cycle import PerformanceCycle, EvaluationAssignment
from .rating import PerformanceRating
from .calibration import (
    CalibrationSession,
    CalibrationSessionRating,
    CalibrationParticipant,
    CalibrationAdjustment,
    CalibrationAuditArtifact,
)
from .rating_config import RatingConfigRecord
from .audit_log import AuditLog

__all__ = [
    "PerformanceCycle",
    "EvaluationAssignment",
    "PerformanceRating",
    "CalibrationSession",
    "CalibrationSessionRating",
    "CalibrationParticipant",
    "CalibrationAdjustment",
    "CalibrationAuditArtifact",
    "RatingConfigRecord",
    "AuditLog",
]
