"""AlertCase API Routers.

This module exports all API routers for the AlertCase application.
"""

from .auth import router as auth_router
from .cases import router as cases_router
from .health import router as health_router
from .rule_assignments import router as rule_assignments_router
from .webhooks import router as webhooks_router

__all__ = [
    "auth_router",
    "cases_router",
    "health_router",
    "rule_assignments_router",
    "webhooks_router",
]
