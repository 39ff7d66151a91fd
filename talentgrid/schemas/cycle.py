from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional

class CycleCreate(BaseModel):
    name: str = Field(min_length=1)
    participating_roles: Optional[List[str]] = None
    min_subordinates: int = 1
    close_date: Optional[datetime] = None
    weights_override: Optional[Dict[str, float]] = None

class CycleResponse(BaseModel):
    id: int
    name: str
    status: str
    participating_roles: List[str]
    min_subordinates: int
    close_date: Optional[datetime] = None
    weights_override: Optional[Dict[str, float]] = None

    model_config = ConfigDict(from_attributes=True)

class CycleTransitionRequest(BaseModel):
    status: str

class EmployeeEnrollment(BaseModel):
    employee_id: str = Field(min_length=1)
    employee_name: Optional[str] = None
    department_id: Optional[str] = None
    manager_id: Optional[str] = None

class EnrollmentRequest(BaseModel):
    employees: List[EmployeeEnrollment]

class EnrollmentResponse(BaseModel):
    created: int

class AssignmentCreate(BaseModel):
    evaluator_id: str
    evaluatee_id: str
    rater_role: str

class AssignmentResponse(BaseModel):
    id: int
    cycle_id: int
    evaluator_id: str
    evaluatee_id: str
    rater_role: str
    status: str
    responses: List = []

    model_config = ConfigDict(from_attributes=True)

class ResponseSubmission(BaseModel):
    # raw survey answers; non-numeric items are ignored by the aggregator
    responses: List

class BulkGenerateResponse(BaseModel):
    total: int
    success: int
    pending: int
    failed: int
    errors: List[Dict[str, str]] = []
