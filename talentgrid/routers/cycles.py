"""
Cycle Router

Review cycles, enrollment and evaluation intake.
All business logic is delegated to the service layer.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import List, Optional

from talentgrid.core.identity import Actor
from talentgrid.core.limiter import limiter, MUTATION_LIMIT
from talentgrid.database import get_db
from talentgrid.routers.auth_deps import get_actor
from talentgrid.schemas.cycle import (
    AssignmentCreate,
    AssignmentResponse,
    BulkGenerateResponse,
    CycleCreate,
    CycleResponse,
    CycleTransitionRequest,
    EnrollmentRequest,
    EnrollmentResponse,
    ResponseSubmission,
)
from talentgrid.services.cycle_service import CycleService
from talentgrid.services.rating_service import RatingService

router = APIRouter(prefix="/cycles", tags=["Cycles"])


@router.post("", response_model=CycleResponse, status_code=201)
def create_cycle(payload: CycleCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CycleService(db, actor.account_id).create_cycle(
        name=payload.name,
        actor=actor,
        participating_roles=payload.participating_roles,
        min_subordinates=payload.min_subordinates,
        close_date=payload.close_date,
        weights_override=payload.weights_override,
    )


@router.get("", response_model=List[CycleResponse])
def list_cycles(status: Optional[str] = None, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CycleService(db, actor.account_id).list_cycles(status)


@router.get("/{cycle_id}", response_model=CycleResponse)
def get_cycle(cycle_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CycleService(db, actor.account_id).get_cycle(cycle_id)


@router.post("/{cycle_id}/transition", response_model=CycleResponse)
def transition_cycle(
    cycle_id: int,
    payload: CycleTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CycleService(db, actor.account_id).transition(cycle_id, payload.status, actor)


@router.post("/{cycle_id}/employees", response_model=EnrollmentResponse)
def enroll_employees(
    cycle_id: int,
    payload: EnrollmentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    created = CycleService(db, actor.account_id).enroll_employees(
        cycle_id, [e.model_dump() for e in payload.employees], actor
    )
    return {"created": len(created)}


@router.post("/{cycle_id}/assignments", response_model=AssignmentResponse, status_code=201)
def add_assignment(
    cycle_id: int,
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CycleService(db, actor.account_id).add_assignment(
        cycle_id, payload.evaluator_id, payload.evaluatee_id, payload.rater_role, actor
    )


@router.post("/assignments/{assignment_id}/responses", response_model=AssignmentResponse)
def submit_responses(
    assignment_id: int,
    payload: ResponseSubmission,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CycleService(db, actor.account_id).submit_responses(assignment_id, payload.responses, actor)


@router.post("/{cycle_id}/ratings/generate", response_model=BulkGenerateResponse)
@limiter.limit(MUTATION_LIMIT)
def generate_cycle_ratings(
    request: Request,
    cycle_id: int,
    max_workers: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Re-run aggregation for every employee of the cycle."""
    result = RatingService(db, actor.account_id).generate_ratings_for_cycle(cycle_id, max_workers=max_workers)
    return result.to_dict()
