"""
Calibration Router

Session lifecycle, adjustments, roster/bonus views and audit artifacts.
All state rules live in CalibrationService.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import List, Optional

from talentgrid.core.identity import Actor
from talentgrid.core.limiter import limiter, MUTATION_LIMIT
from talentgrid.database import get_db
from talentgrid.routers.auth_deps import get_actor
from talentgrid.schemas.calibration import (
    AdjustmentCreate,
    AdjustmentResponse,
    AdjustmentResult,
    ArtifactResponse,
    ArtifactVerification,
    CancelRequest,
    ParticipantCreate,
    ParticipantResponse,
    RevertRequest,
    RosterResponse,
    SessionCreate,
    SessionResponse,
)
from talentgrid.services.audit_artifact import AuditArtifactGenerator
from talentgrid.services.calibration_service import CalibrationService

router = APIRouter(prefix="/calibration", tags=["Calibration"])


@router.post("/sessions", response_model=SessionResponse, status_code=201)
def create_session(payload: SessionCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).create_session(
        cycle_id=payload.cycle_id,
        name=payload.name,
        actor=actor,
        description=payload.description,
        filter_mode=payload.filter_mode,
        filter_config=payload.filter_config,
        scheduled_at=payload.scheduled_at,
        require_panel_signoff=payload.require_panel_signoff,
        enable_forced_distribution=payload.enable_forced_distribution,
        distribution_targets=payload.distribution_targets,
        participants=[p.model_dump() for p in payload.participants],
    )


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    cycle_id: Optional[int] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CalibrationService(db, actor.account_id).list_sessions(cycle_id=cycle_id, status=status)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).get_session(session_id)


@router.post("/sessions/{session_id}/participants", response_model=ParticipantResponse, status_code=201)
def add_participant(
    session_id: int,
    payload: ParticipantCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CalibrationService(db, actor.account_id).add_participant(
        session_id, payload.participant_id, actor, payload.participant_name, payload.role
    )


@router.post("/sessions/{session_id}/start", response_model=SessionResponse)
def start_session(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).start_session(session_id, actor)


@router.post("/sessions/{session_id}/sign-off", response_model=ParticipantResponse)
def sign_off(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).sign_off(session_id, actor)


@router.post("/sessions/{session_id}/adjustments", response_model=AdjustmentResult, status_code=201)
@limiter.limit(MUTATION_LIMIT)
def apply_adjustment(
    request: Request,
    session_id: int,
    payload: AdjustmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    outcome = CalibrationService(db, actor.account_id).apply_adjustment(
        session_id,
        payload.rating_id,
        payload.final_score,
        payload.justification,
        actor,
        new_potential_score=payload.potential_score,
    )
    return {
        "adjustment": outcome.adjustment,
        "rating": outcome.rating,
        "warnings": [w.to_dict() for w in outcome.warnings],
    }


@router.get("/sessions/{session_id}/adjustments", response_model=List[AdjustmentResponse])
def list_adjustments(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).list_adjustments(session_id)


@router.post(
    "/sessions/{session_id}/adjustments/{adjustment_id}/revert",
    response_model=AdjustmentResponse,
    status_code=201,
)
@limiter.limit(MUTATION_LIMIT)
def revert_adjustment(
    request: Request,
    session_id: int,
    adjustment_id: int,
    payload: RevertRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return CalibrationService(db, actor.account_id).revert_adjustment(
        session_id, adjustment_id, payload.reason, actor
    )


@router.get("/sessions/{session_id}/roster", response_model=RosterResponse)
def get_roster(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).get_roster(session_id)


@router.post("/sessions/{session_id}/close", response_model=ArtifactResponse)
@limiter.limit(MUTATION_LIMIT)
def close_session(
    request: Request,
    session_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Close the session; the response is the generated audit artifact."""
    return CalibrationService(db, actor.account_id).close_session(session_id, actor)


@router.post("/sessions/{session_id}/cancel", response_model=SessionResponse)
def cancel_session(
    session_id: int,
    payload: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    reason = payload.reason if payload else None
    return CalibrationService(db, actor.account_id).cancel_session(session_id, actor, reason)


@router.get("/sessions/{session_id}/artifact", response_model=ArtifactResponse)
def latest_artifact(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return AuditArtifactGenerator(db, actor.account_id).get_latest(session_id)


@router.get("/sessions/{session_id}/artifacts", response_model=List[ArtifactResponse])
def artifact_versions(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return AuditArtifactGenerator(db, actor.account_id).list_versions(session_id)


@router.post("/sessions/{session_id}/artifacts", response_model=ArtifactResponse, status_code=201)
def regenerate_artifact(session_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return CalibrationService(db, actor.account_id).regenerate_artifact(session_id, actor)


@router.get("/artifacts/verify/{artifact_hash}", response_model=ArtifactVerification)
def verify_artifact(artifact_hash: str, db: Session = Depends(get_db)):
    """Public verification target for shared artifact links; needs no identity headers."""
    return AuditArtifactGenerator(db).verify(artifact_hash)
