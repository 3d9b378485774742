"""FastAPI application for Beacon."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from beacon import __version__
from beacon.config import Settings
from beacon.exceptions import (
    AuthenticationError,
    BeaconError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from beacon.logging import configure_logging, get_logger
from beacon.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)

WEBHOOKS_PREFIX = "/api/v1/webhooks"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Builds and initializes the WebhookService, starts the background
    delivery loop, and shuts both down on exit.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting Beacon API",
        env=settings.env,
        log_level=settings.log_level,
        storage_backend=settings.storage_backend,
    )

    service = WebhookService.create(settings)
    await service.initialize()
    set_service(service)
    service.start()

    yield

    await service.close()
    set_service(None)
    logger.info("Beacon API stopped")


def register_exception_handlers(app: FastAPI) -> None:
    """Map the Beacon exception hierarchy onto HTTP status codes."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(LimitExceededError)
    async def limit_exceeded_handler(request: Request, exc: LimitExceededError) -> JSONResponse:
        """Handle subscription-limit errors with 409 status."""
        logger.info("Webhook limit reached", limit=exc.limit, path=str(request.url))
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        """Handle authentication errors with 401 status."""
        logger.warning("Authentication failed", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=401, content=exc.to_dict())

    @app.exception_handler(BeaconError)
    async def beacon_error_handler(request: Request, exc: BeaconError) -> JSONResponse:
        """Handle all other Beacon errors with 500 status."""
        logger.error("Beacon error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from beacon.api import create_app

        app = create_app()
        # Run with: uvicorn beacon.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Beacon",
        description="Signed webhook delivery for domain events.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    register_exception_handlers(app)
    app.include_router(router, prefix=WEBHOOKS_PREFIX)

    return app


# Default app instance for uvicorn
app = create_app()
