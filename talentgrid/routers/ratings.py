"""
Ratings Router

Aggregated ratings, potential assessment and talent-grid views.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from talentgrid.core.identity import Actor
from talentgrid.core.schemas import ApiResponse
from talentgrid.database import get_db
from talentgrid.routers.auth_deps import get_actor
from talentgrid.schemas.rating import PotentialRequest, RatingListResponse, RatingResponse
from talentgrid.services.rating_service import RATING_PENDING, RatingService

router = APIRouter(tags=["Ratings"])


@router.get("/cycles/{cycle_id}/ratings", response_model=RatingListResponse)
def list_ratings(
    cycle_id: int,
    department_id: Optional[str] = None,
    manager_id: Optional[str] = None,
    level: Optional[str] = None,
    include_pending: bool = True,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    service = RatingService(db, actor.account_id)
    ratings = service.list_ratings(
        cycle_id,
        department_id=department_id,
        manager_id=manager_id,
        level=level,
        include_pending=include_pending,
    )
    return {"ratings": ratings, "stats": service.rating_stats(cycle_id)}


@router.get("/cycles/{cycle_id}/nine-box")
def nine_box_grid(cycle_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return RatingService(db, actor.account_id).get_nine_box_grid(cycle_id)


@router.get("/cycles/{cycle_id}/distribution")
def rating_distribution(cycle_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return RatingService(db, actor.account_id).get_distribution(cycle_id)


@router.get("/ratings/{rating_id}", response_model=RatingResponse)
def get_rating(rating_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return RatingService(db, actor.account_id).get_rating(rating_id)


@router.post("/ratings/{rating_id}/generate", response_model=ApiResponse[RatingResponse])
def generate_rating(rating_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """
    Recalculate one rating. Missing evaluation data is not an error: the
    response is successful with status "pending" and no data.
    """
    service = RatingService(db, actor.account_id)
    outcome = service.generate_rating(rating_id)
    if outcome == RATING_PENDING:
        return ApiResponse.pending("No rater role has scorable evaluations yet")
    rating = service.get_rating(rating_id)
    return ApiResponse.ok(RatingResponse.model_validate(rating))


@router.put("/ratings/{rating_id}/potential", response_model=RatingResponse)
def rate_potential(
    rating_id: int,
    payload: PotentialRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return RatingService(db, actor.account_id).rate_potential(
        rating_id,
        payload.aspiration,
        payload.ability,
        payload.engagement,
        actor,
        notes=payload.notes,
        reassess=payload.reassess,
    )


@router.delete("/ratings/{rating_id}/potential", response_model=RatingResponse)
def clear_potential(
    rating_id: int,
    reassess: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return RatingService(db, actor.account_id).clear_potential(rating_id, actor, reassess=reassess)
