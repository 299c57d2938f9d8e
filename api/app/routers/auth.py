"""Authentication router for AlertCase API.

Tokens are issued by the identity service; this module only verifies bearer
tokens, resolves the acting user and exposes the dependencies other routers
use to receive that user explicitly.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.models import User
from app.schemas.common import BaseSchema
from app.utils.security import decode_access_token
from app.utils.sentry import set_user_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# Schemas
# =============================================================================


class UserResponse(BaseSchema):
    """Schema for the authenticated user."""

    id: int = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="Email address")
    full_name: str = Field(..., description="Full name")
    role: str = Field(..., description="User role")
    is_active: bool = Field(..., description="Whether the account is active")


# =============================================================================
# Dependencies
# =============================================================================


DbSession = Annotated[AsyncSession, Depends(get_db)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=http_status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    db: DbSession,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User | None:
    """
    Dependency to get current authenticated user from JWT token.

    Args:
        db: Database session
        credentials: Bearer credentials from the Authorization header

    Returns:
        User if authenticated, None if no token was sent

    Raises:
        HTTPException: If token is invalid or the user is unknown or disabled
    """
    if credentials is None:
        return None

    token_data = decode_access_token(credentials.credentials)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, token_data.user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User account is disabled")

    set_user_context(user.id, user.username)
    return user


async def get_current_user_required(
    user: User | None = Depends(get_current_user),
) -> User:
    """
    Dependency that requires authentication.

    Raises HTTPException if not authenticated.
    """
    if user is None:
        raise _unauthorized("Authentication required")
    return user


async def get_admin_user(
    user: User = Depends(get_current_user_required),
) -> User:
    """
    Dependency that requires an administrative role.

    Raises HTTPException if the user's role is not one of ``admin_roles``.
    """
    if user.role.lower() not in get_settings().admin_roles_list:
        raise HTTPException(
            status_code=http_status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# Type aliases
CurrentUser = Annotated[User, Depends(get_current_user_required)]
AdminUser = Annotated[User, Depends(get_admin_user)]


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user profile",
    description="Returns the profile of the user the bearer token belongs to.",
)
async def get_me(
    current_user: CurrentUser,
) -> UserResponse:
    """Get the current authenticated user's profile."""
    return UserResponse.model_validate(current_user)
