from fastapi import APIRouter
from talentgrid.routers import cycles, ratings, calibration, config

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(cycles.router)
api_router.include_router(ratings.router)
api_router.include_router(calibration.router)
api_router.include_router(config.router, tags=["Configuration"])
