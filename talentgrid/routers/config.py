"""
Config Router

Per-account rating configuration.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Dict

from talentgrid.core.identity import Actor
from talentgrid.database import get_db
from talentgrid.routers.auth_deps import get_actor
from talentgrid.schemas.config import RatingConfigResponse, RatingConfigUpdate
from talentgrid.scoring.config import WEIGHT_PRESETS
from talentgrid.services.rating_config_service import RatingConfigService

router = APIRouter(prefix="/config", tags=["Configuration"])


@router.get("/rating", response_model=RatingConfigResponse)
def get_rating_config(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return RatingConfigService(db, actor.account_id).get_config().model_dump()


@router.put("/rating", response_model=RatingConfigResponse)
def update_rating_config(
    payload: RatingConfigUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    changes = payload.model_dump(exclude_none=True)
    return RatingConfigService(db, actor.account_id).save_config(changes, actor).model_dump()


@router.get("/weight-presets", response_model=Dict[str, Dict[str, float]])
def weight_presets(actor: Actor = Depends(get_actor)):
    return WEIGHT_PRESETS
