"""Utility modules for AlertCase API."""

from app.utils.sentry import (
    add_breadcrumb,
    set_user_context,
    setup_sentry,
)

__all__ = [
    "setup_sentry",
    "set_user_context",
    "add_breadcrumb",
]
