"""Principal resolution from bearer JWTs.

Sign-in itself belongs to the external identity provider; this module
only decodes the access token it issued and loads the user.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.config import get_settings
from sprintdesk.db.session import get_db_session
from sprintdesk.exceptions import ForbiddenError, UnauthenticatedError
from sprintdesk.models.user import User

logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_TTL = timedelta(hours=12)


def create_access_token(user_id: UUID, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    expire = datetime.now(timezone.utc) + (expires_delta or ACCESS_TOKEN_TTL)
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise UnauthenticatedError()

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise UnauthenticatedError("Invalid token")

    user_id = payload.get("sub")
    if payload.get("type") != "access" or not user_id:
        raise UnauthenticatedError("Invalid token")

    try:
        user = await db.get(User, UUID(user_id))
    except ValueError:
        raise UnauthenticatedError("Invalid token")

    if user is None:
        logger.warning("token_user_missing", user_id=user_id)
        raise UnauthenticatedError("User not found")
    return user


async def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Admin-only guard."""
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
