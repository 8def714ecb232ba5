"""
API v1 router that includes all endpoint routers.
"""
from fastapi import APIRouter

from raas.api.v1.endpoints import rollups

# Create main API router
api_router = APIRouter()

api_router.include_router(
    rollups.router,
    prefix="/rollups",
    tags=["rollups"],
)
