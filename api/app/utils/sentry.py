"""
Sentry error tracking setup for AlertCase.

Sentry is optional and only initialised when ``SENTRY_DSN`` is configured.
Webhook processing adds breadcrumbs so that an error report shows which
delivery and alert were being handled.
"""

import logging
from typing import TYPE_CHECKING, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

if TYPE_CHECKING:
    from app.config import Settings

logger = logging.getLogger(__name__)


def setup_sentry(settings: "Settings") -> bool:
    """
    Initialize Sentry error tracking.

    Args:
        settings: Application settings containing Sentry configuration.

    Returns:
        bool: True if Sentry was initialized, False if disabled (no DSN).
    """
    if not settings.sentry_enabled:
        logger.debug("Sentry disabled (no DSN configured)")
        return False

    release = f"alertcase@{settings.sentry_release}"
    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            release=release,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                # INFO level for breadcrumbs, ERROR level for events
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            attach_stacktrace=True,
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    logger.info(
        f"Sentry initialized: environment={settings.sentry_environment}, "
        f"release={release}, traces_sample_rate={settings.sentry_traces_sample_rate}"
    )
    return True


def set_user_context(user_id: int | None, username: str | None = None) -> None:
    """Associate subsequent error reports with the acting user."""
    if user_id is None:
        sentry_sdk.set_user(None)
        return
    sentry_sdk.set_user({"id": str(user_id), "username": username})


def add_breadcrumb(
    message: str,
    category: str = "webhook",
    level: str = "info",
    data: dict[str, Any] | None = None,
) -> None:
    """Add a breadcrumb to the current Sentry scope (a no-op when Sentry is not initialised)."""
    sentry_sdk.add_breadcrumb(
        message=message,
        category=category,
        level=level,
        data=data or {},
    )
