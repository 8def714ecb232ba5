"""
FastAPI dependencies.
"""
from fastapi import Request

from raas.services.rollup_service import RollupService


def get_rollup_service(request: Request) -> RollupService:
    """The RollupService constructed by create_app()."""
    return request.app.state.rollup_service
