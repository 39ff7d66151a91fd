"""Pure scoring engines. Configuration is passed into every call, nothing is read from globals."""
from talentgrid.scoring.config import RatingConfig, DEFAULT_RATING_CONFIG, load_rating_config
from talentgrid.scoring.score_aggregator import ScoreAggregator, AggregationResult, AssignmentInput
from talentgrid.scoring.potential_engine import PotentialEngine, PotentialResult
from talentgrid.scoring.nine_box import NineBoxClassifier, NineBoxPosition, AxisBand

__all__ = [
    "RatingConfig",
    "DEFAULT_RATING_CONFIG",
    "load_rating_config",
    "ScoreAggregator",
    "AggregationResult",
    "AssignmentInput",
    "PotentialEngine",
    "PotentialResult",
    "NineBoxClassifier",
    "NineBoxPosition",
    "AxisBand",
]
