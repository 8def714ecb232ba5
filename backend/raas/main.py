"""
FastAPI main application entry point.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware

from raas.api.v1.router import api_router
from raas.core.config import Settings, settings as default_settings
from raas.core.exception_handlers import register_exception_handlers
from raas.core.logging_config import configure_logging
from raas.schemas.rollup import HealthResponse
from raas.services.rollup_service import RollupService

logger = logging.getLogger(__name__)


def create_app(service: Optional[RollupService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Lifecycle service to serve; a new one is constructed if omitted
        settings: Settings to use; defaults to the environment
    """
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Rollup-as-a-Service lifecycle API: deploy, start, stop and delete rollups",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/openapi.json",
    )
    app.state.settings = settings
    app.state.rollup_service = service or RollupService(settings=settings)

    # Register domain exception handlers
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
        max_age=600,
    )

    @app.get("/api/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
    async def health_check(request: Request):
        """
        Health check endpoint.

        Returns:
            Service status and rollup counts per status
        """
        rollup_service: RollupService = request.app.state.rollup_service
        return HealthResponse(
            status="healthy",
            version=settings.APP_VERSION,
            rollups=await rollup_service.count_by_status(),
        )

    @app.get("/api/v1/info", status_code=status.HTTP_200_OK)
    async def info():
        return {
            "app_name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "api_version": "v1",
        }

    # Include API v1 router
    app.include_router(api_router, prefix="/api/v1")

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} ready ({settings.ENVIRONMENT})")
    return app
