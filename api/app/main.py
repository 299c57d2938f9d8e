"""
AlertCase API - Main FastAPI Application.

This module initializes the FastAPI application with all routers,
middleware, exception handlers and startup/shutdown events.

Production Features:
- Security headers (OWASP)
- Structured logging (structlog)
- Prometheus metrics
- Sentry error tracking
- CORS hardening
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi import status as http_status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from app.exceptions import (
    DomainValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from app.utils.logging import RequestLoggingMiddleware, configure_logging, get_logger
from app.utils.metrics import setup_prometheus
from app.utils.sentry import setup_sentry

# Initialize structured logging
configure_logging()
logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.

    Headers added:
    - X-Content-Type-Options: Prevents MIME type sniffing
    - X-Frame-Options: Prevents clickjacking
    - Strict-Transport-Security: Enforces HTTPS (in production)
    - Content-Security-Policy: The API serves no active content
    - Referrer-Policy: Controls referrer information
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        settings = get_settings()

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        # Swagger UI needs its CDN assets outside production
        if settings.is_production:
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup:
        - Starts the SLA sweep scheduler (when enabled)

    Shutdown:
        - Stops the scheduler
    """
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} API...")

    from app.services.scheduler_service import scheduler_service

    if settings.scheduler_enabled:
        try:
            scheduler_service.start()
        except Exception as e:
            logger.warning(f"Scheduler initialization skipped: {e}")

    yield

    logger.info(f"Shutting down {settings.app_name} API...")
    scheduler_service.stop()


# =============================================================================
# Exception handlers
# =============================================================================


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=http_status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


async def invalid_transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    logger.info(f"Rejected transition {exc.event} from {exc.current_status}")
    return JSONResponse(
        status_code=http_status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "event": exc.event,
            "current_status": exc.current_status,
        },
    )


async def domain_validation_handler(request: Request, exc: DomainValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=http_status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning(f"Concurrent modification detected: {exc}")
    return JSONResponse(
        status_code=http_status.HTTP_409_CONFLICT,
        content={"detail": "The case was modified concurrently, reload and retry"},
    )


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    settings = get_settings()

    # Initialize Sentry before app creation for early error capture
    if setup_sentry(settings):
        logger.info("Sentry error tracking enabled")

    # Conditionally disable docs in production
    docs_url = None if settings.is_production else "/docs"
    redoc_url = None if settings.is_production else "/redoc"
    openapi_url = None if settings.is_production else "/openapi.json"

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Operations case management fed by Grafana alert webhooks",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
        redirect_slashes=False,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
    )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(InvalidTransitionError, invalid_transition_handler)
    app.add_exception_handler(DomainValidationError, domain_validation_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)

    app.add_middleware(SecurityHeadersMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Grafana-Signature"],
        expose_headers=["X-Request-ID"],
    )

    # Outermost, so every request gets a correlation id
    app.add_middleware(RequestLoggingMiddleware)

    # Routers define their own prefixes and tags
    from app.routers import auth, cases, health, rule_assignments, webhooks

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")
    app.include_router(cases.router, prefix="/api/v1")
    app.include_router(rule_assignments.router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Liveness probe for container health checks and load balancers."""
        return {
            "status": "healthy",
            "service": "alertcase-api",
            "version": settings.app_version,
        }

    # Setup Prometheus metrics (exposes /metrics endpoint)
    setup_prometheus(app)

    return app


# Create the application instance
app = create_application()
