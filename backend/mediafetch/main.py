"""FastAPI application entry point."""
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mediafetch.api import downloads
from mediafetch.api.errors import generic_exception_handler, media_fetch_error_handler
from mediafetch.api.v1.router import api_router
from mediafetch.core.config import Settings, settings
from mediafetch.core.logging import get_logger, setup_logging
from mediafetch.models.fetch import HealthResponse
from mediafetch.services.errors import MediaFetchError

__version__ = "0.1.0"

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events.

    Creates the output directory on startup; it is never removed.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    app_settings: Settings = app.state.settings

    # Startup
    os.makedirs(app_settings.OUTPUT_DIR, exist_ok=True)
    logger.info(f"Starting application in {app_settings.ENV} mode")
    logger.info(f"Output directory: {app_settings.OUTPUT_DIR}")
    logger.info(f"Public base URL: {app_settings.PUBLIC_BASE_URL or '(from request)'}")
    if app_settings.AUTH_ENABLED and app_settings.BASIC_AUTH_PASS == "changeme":
        logger.warning("BASIC_AUTH_PASS is the default value; set it before exposing the service")

    yield

    # Shutdown
    logger.info("Shutting down application")


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the environment-loaded ones)

    Returns:
        Configured FastAPI application instance
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="MediaFetch API",
        description="Runs yt-dlp on a URL and streams its progress as Server-Sent Events",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(MediaFetchError, media_fetch_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Routes
    app.include_router(api_router, prefix=app_settings.API_V1_PREFIX)
    app.include_router(downloads.router, prefix=app_settings.DOWNLOADS_PREFIX, tags=["downloads"])

    # Health check endpoint
    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
        description="Check if the service is running",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint.

        Returns:
            Health status response
        """
        return HealthResponse(status="healthy", version=__version__)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mediafetch.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
