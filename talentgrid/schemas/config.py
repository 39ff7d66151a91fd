from pydantic import BaseModel
from typing import Dict, List, Optional

class ScoreBandPayload(BaseModel):
    level: str
    label: str
    min_score: float

class AxisPayload(BaseModel):
    medium: float
    high: float

class RatingConfigUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""
    weights: Optional[Dict[str, float]] = None
    bands: Optional[List[ScoreBandPayload]] = None
    performance_axis: Optional[AxisPayload] = None
    potential_axis: Optional[AxisPayload] = None
    bonus_factors: Optional[Dict[str, float]] = None
    min_justification_length: Optional[int] = None
    justification_display_limit: Optional[int] = None
    distribution_tolerance: Optional[float] = None

class RatingConfigResponse(BaseModel):
    scale_min: float
    scale_max: float
    weights: Dict[str, float]
    bands: List[ScoreBandPayload]
    performance_axis: AxisPayload
    potential_axis: AxisPayload
    bonus_factors: Dict[str, float]
    min_justification_length: int
    justification_display_limit: int
    distribution_tolerance: float
