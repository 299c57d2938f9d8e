"""
Structured logging configuration for the AlertCase API.

Uses structlog for structured logs: coloured console output in development,
JSON in production. Standard-library loggers used by the service modules are
routed through the same configuration.
"""

import logging
import sys
import time
import uuid

import structlog
from structlog.types import Processor

from app.config import get_settings

REQUEST_ID_HEADER = "x-request-id"

# Probes and scrapes would drown out real traffic
QUIET_PATHS = {"/health", "/metrics", "/api/v1/webhooks/health"}


def configure_logging() -> None:
    """
    Configure structured logging for the application.

    In development: Pretty-printed, colored console output
    In production: JSON-formatted logs for aggregation
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(structlog.processors.JSONRenderer())
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=logging.INFO,
        )
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=True))
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stdout,
            level=logging.DEBUG if settings.debug else logging.INFO,
        )

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    if not settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("Webhook received", alerts=3, receiver="ops")
    """
    return structlog.get_logger(name)


def bind_request_context(request_id: str, **values) -> None:
    """Bind request-scoped values to every log call made while handling the request."""
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


class RequestLoggingMiddleware:
    """
    ASGI middleware adding a correlation id and timing to every request.

    An incoming ``X-Request-ID`` is reused so that webhook retries from
    Grafana can be traced end to end; otherwise a short id is generated. The
    id is echoed back in the response headers.
    """

    def __init__(self, app):
        self.app = app
        self.logger = get_logger(__name__)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        incoming = headers.get(REQUEST_ID_HEADER.encode(), b"").decode("latin-1").strip()
        request_id = incoming[:64] or uuid.uuid4().hex[:8]
        path = scope.get("path", "")
        method = scope.get("method", "")
        quiet = path in QUIET_PATHS
        start_time = time.perf_counter()

        bind_request_context(request_id=request_id, path=path)
        if not quiet:
            self.logger.info(
                "Request started",
                method=method,
                client=(scope.get("client") or ("unknown", 0))[0],
            )

        response_status = 500

        async def send_wrapper(message):
            nonlocal response_status
            if message["type"] == "http.response.start":
                response_status = message["status"]
                message.setdefault("headers", [])
                message["headers"] = list(message["headers"]) + [
                    (REQUEST_ID_HEADER.encode(), request_id.encode("latin-1")),
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            if not quiet or response_status >= 500:
                self.logger.info(
                    "Request completed",
                    method=method,
                    status=response_status,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
            clear_request_context()
