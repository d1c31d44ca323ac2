"""API dependencies for authentication and common operations."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.core.exceptions import AuthenticationError, AuthorizationError
from rentcore.core.security import verify_token
from rentcore.database import get_db, utcnow
from rentcore.models.user import User

__all__ = [
    "DbSession",
    "Now",
    "get_current_admin",
    "get_current_host",
    "get_current_user",
    "get_db",
    "get_now",
]

# Security scheme
security = HTTPBearer()


def get_now() -> datetime:
    """Request clock. Overridden in tests to pin time."""
    return utcnow()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    payload = verify_token(credentials.credentials, token_type="access")
    try:
        user_id = UUID(payload.get("sub") or "")
    except ValueError:
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_current_host(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are a host."""
    if current_user.role not in ("host", "admin"):
        raise AuthorizationError("Host access required")
    return current_user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


DbSession = Annotated[AsyncSession, Depends(get_db)]
Now = Annotated[datetime, Depends(get_now)]
