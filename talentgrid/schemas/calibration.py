from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from talentgrid.schemas.rating import RatingResponse

class ParticipantCreate(BaseModel):
    participant_id: str = Field(min_length=1)
    participant_name: Optional[str] = None
    role: str = "reviewer"

class ParticipantResponse(BaseModel):
    participant_id: str
    participant_name: Optional[str] = None
    role: str
    signed_off_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class SessionCreate(BaseModel):
    cycle_id: int
    name: str = Field(min_length=1)
    description: Optional[str] = None
    filter_mode: str = "all"
    filter_config: Optional[Dict[str, List[Any]]] = None
    scheduled_at: Optional[datetime] = None
    require_panel_signoff: bool = False
    enable_forced_distribution: bool = False
    distribution_targets: Optional[Dict[str, float]] = None
    participants: List[ParticipantCreate] = []

    model_config = ConfigDict(allow_inf_nan=False)

class SessionResponse(BaseModel):
    id: int
    cycle_id: int
    name: str
    description: Optional[str] = None
    status: str
    filter_mode: str
    facilitator_id: str
    require_panel_signoff: bool
    enable_forced_distribution: bool
    distribution_targets: Optional[Dict[str, float]] = None
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    participants: List[ParticipantResponse] = []

    model_config = ConfigDict(from_attributes=True)

class CancelRequest(BaseModel):
    reason: Optional[str] = None

class AdjustmentCreate(BaseModel):
    """At least one of final_score and potential_score must be given."""
    rating_id: int
    final_score: Optional[float] = None
    potential_score: Optional[float] = None
    justification: str

    model_config = ConfigDict(allow_inf_nan=False)

class RevertRequest(BaseModel):
    reason: str

class AdjustmentResponse(BaseModel):
    id: int
    sequence: int
    action: str
    rating_id: int
    employee_id: str
    employee_name: Optional[str] = None
    original_score: Optional[float] = None
    original_level: Optional[str] = None
    new_final_score: Optional[float] = None
    new_final_level: Optional[str] = None
    previous_potential_score: Optional[float] = None
    new_potential_score: Optional[float] = None
    new_potential_level: Optional[str] = None
    adjustment_type: Optional[str] = None
    original_position: Optional[str] = None
    new_position: Optional[str] = None
    justification: str
    author_id: str
    reverts_adjustment_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class RuleWarningResponse(BaseModel):
    code: str
    severity: str
    message: str

class AdjustmentResult(BaseModel):
    adjustment: AdjustmentResponse
    rating: RatingResponse
    warnings: List[RuleWarningResponse] = []

class RosterEntry(BaseModel):
    rating: RatingResponse
    position: str
    position_label: str
    bonus_multiplier: Optional[float] = None

class RosterResponse(BaseModel):
    session_id: int
    status: str
    entries: List[RosterEntry]
    bonus_factor: Optional[float] = None
    classified: int
    unclassified: int

class ArtifactResponse(BaseModel):
    session_id: int
    version: int
    artifact_hash: str
    content_checksum: str
    verification_url: str
    generated_at: datetime
    generated_by: str
    payload: Dict[str, Any]

    model_config = ConfigDict(from_attributes=True)

class ArtifactVerification(BaseModel):
    artifact_hash: str
    session_id: int
    version: int
    generated_at: Optional[str] = None
    valid: bool
    expected_checksum: str
    actual_checksum: str
