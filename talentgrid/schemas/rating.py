from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional

class RatingResponse(BaseModel):
    id: int
    cycle_id: int
    employee_id: str
    employee_name: Optional[str] = None
    department_id: Optional[str] = None
    manager_id: Optional[str] = None

    calculated_score: Optional[float] = None
    calculated_level: Optional[str] = None
    self_score: Optional[float] = None
    manager_score: Optional[float] = None
    peer_score: Optional[float] = None
    upward_score: Optional[float] = None
    evaluation_completeness: Optional[float] = None
    total_evaluations: Optional[int] = None
    completed_evaluations: Optional[int] = None

    final_score: Optional[float] = None
    final_level: Optional[str] = None
    effective_score: Optional[float] = None
    effective_level: Optional[str] = None
    calibrated: bool = False
    adjustment_type: Optional[str] = None

    potential_aspiration: Optional[int] = None
    potential_ability: Optional[int] = None
    potential_engagement: Optional[int] = None
    potential_score: Optional[float] = None
    potential_level: Optional[str] = None
    potential_rated_at: Optional[datetime] = None

    nine_box_position: Optional[str] = None
    is_pending: bool = True
    version: int

    model_config = ConfigDict(from_attributes=True)

class RatingListResponse(BaseModel):
    ratings: List[RatingResponse]
    stats: Dict[str, int]

class PotentialRequest(BaseModel):
    # Strict ints so that 2.5 or "2" is rejected rather than coerced
    aspiration: Optional[int] = Field(default=None, strict=True)
    ability: Optional[int] = Field(default=None, strict=True)
    engagement: Optional[int] = Field(default=None, strict=True)
    notes: Optional[str] = None
    reassess: bool = False
