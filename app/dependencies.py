"""Dependency injection for FastAPI."""

from collections.abc import Callable, Coroutine
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.utils import decode_access_token
from app.db.database import get_db
from app.db.models import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[Session, Depends(get_db)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: DbSession,
) -> User:
    """Resolve the bearer token to an active user.

    Raises:
        HTTPException: 401 when the token is missing, invalid or names an
            unknown user. 403 when the account is disabled.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    token_data = decode_access_token(credentials.credentials)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    user = db.get(User, token_data.user_id)
    if user is None:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


def require_roles(
    *roles: UserRole, detail: str = "Insufficient permissions"
) -> Callable[..., Coroutine[Any, Any, User]]:
    """Build a dependency that admits only users holding one of ``roles``.

    Args:
        *roles: Roles allowed through.
        detail: Message of the 403 raised for everybody else.

    Returns:
        An async dependency yielding the current user.
    """
    allowed = frozenset(roles)

    async def dependency(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return current_user

    return dependency


# Viewers may browse the registry but not change it
get_current_technician = require_roles(
    UserRole.ADMIN, UserRole.TECHNICIAN, detail="Technician access required"
)

CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentTechnician = Annotated[User, Depends(get_current_technician)]

__all__ = [
    "CurrentTechnician",
    "CurrentUser",
    "DbSession",
    "get_current_technician",
    "get_current_user",
    "get_db",
    "require_roles",
]
