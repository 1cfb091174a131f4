"""
FastAPI Main Application
Entry point for the intake API server
Source: https://fastapi.tiangolo.com/
Verified: 2026-10-01
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from phi_claims import __version__
from phi_claims.api.config import Settings, get_settings
from phi_claims.api.routes import health, intake, patients
from phi_claims.core.container import ServiceContainer, build_container
from phi_claims.utils.errors import PipelineError, ValidationError
from phi_claims.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _install_exception_handlers(app: FastAPI) -> None:
    """
    Map domain errors to responses.

    Evidence: Centralised exception handlers keep route code free of HTTP plumbing
    Source: https://fastapi.tiangolo.com/tutorial/handling-errors/#install-custom-exception-handlers
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.message} {exc.errors}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.public_message, "errors": exc.errors},
        )

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        if exc.status_code >= 500:
            cause = f" ({exc.original_error})" if exc.original_error else ""
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}{cause}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Pydantic echoes the offending input; return locations and messages only
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        logger.info(f"Request validation failed on {request.url.path}: {len(errors)} error(s)")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": "Invalid request", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}"
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )


def create_app(
    container: Optional[ServiceContainer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        container: Pre-built services; built at startup from settings when omitted
        settings: Settings override (defaults to the container's or the cached settings)
    """
    settings = settings or (container.settings if container else get_settings())
    setup_logging(
        level=settings.LOG_LEVEL,
        json_logs=settings.is_production,
        redact_phi=settings.redact_logs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Application lifespan manager.

        Evidence: Lifespan events for startup/shutdown tasks
        Source: https://fastapi.tiangolo.com/advanced/events/
        """
        owns_container = getattr(app.state, "container", None) is None
        if owns_container:
            app.state.container = build_container(settings)
        logger.info(
            f"Starting {settings.SERVICE_NAME} in {settings.ENVIRONMENT} mode "
            f"({settings.INTEGRATION_MODE.value} integrations)"
        )

        yield

        logger.info("Shutting down application")
        if owns_container:
            await app.state.container.close()
            logger.info("Service clients closed")

    app = FastAPI(
        title="PHI Claims Intake API",
        description="Tenant-isolated claim intake with PHI-safe event publication",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    _install_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(intake.router)
    app.include_router(patients.router)

    @app.get("/")
    async def root() -> dict[str, Any]:
        """API information."""
        return {
            "name": settings.SERVICE_NAME,
            "version": __version__,
            "environment": settings.ENVIRONMENT,
            "docs": "/docs" if not settings.is_production else "disabled",
        }

    return app


app = create_app()
