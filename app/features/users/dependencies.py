"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Unauthenticated, Unauthorized
from app.features.users.models import User
from app.features.users.auth import extract_subject, get_appwrite_user
from app.utils import get_logger, utcnow


log = get_logger(__name__)
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from the bearer token.

    This dependency:
    1. Extracts JWT from Authorization header
    2. Resolves the Appwrite user id it names
    3. Looks up or creates the user in the local directory
    4. Updates last_login_at timestamp
    """
    if credentials is None:
        raise Unauthenticated("Missing bearer token")

    appwrite_user_id = extract_subject(credentials.credentials)

    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_user_id)
    )
    user = result.scalar_one_or_none()

    # First sight of this identity: mirror it into the directory
    if user is None:
        appwrite_user = await get_appwrite_user(appwrite_user_id)
        user = User(
            appwrite_id=appwrite_user_id,
            email=appwrite_user.get("email", ""),
            name=appwrite_user.get("name", "Unknown"),
        )
        db.add(user)
        log.info("Registered directory user for appwrite id %s", appwrite_user_id)

    user.last_login_at = utcnow()
    await db.flush()

    if not user.is_active:
        raise Unauthorized("User account is deactivated")

    return user


async def get_current_user_id(
    user: Annotated[User, Depends(get_current_user)]
) -> str:
    """The only identity fact the governance services consume."""
    return user.id


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Require admin privileges.

    Usage:
        @router.delete("/users/{user_id}")
        async def delete_user(
            user_id: str,
            admin: User = Depends(get_current_admin_user)
        ):
            ...
    """
    if not user.is_admin:
        raise Unauthorized("Admin privileges required")
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
