"""
Permission checking dependencies for route protection.
"""
from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Unauthorized
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.resolution import PermissionResolver
from app.utils import get_logger


log = get_logger(__name__)


async def get_permission_resolver(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> PermissionResolver:
    """One resolver per request; FastAPI caches the dependency within a request."""
    return PermissionResolver(db)


def require_permission(resource: str, action: str):
    """
    FastAPI dependency to require a specific permission.

    System admins pass every check. Everyone else needs the permission
    through a role granted directly to their user.

    Usage:
        @router.post("/organizations")
        async def create_organization(
            user: User = Depends(require_permission("organizations", "create"))
        ):
            ...

    Raises:
        Unauthorized: the session user lacks resource:action
    """
    async def permission_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)],
    ) -> User:
        if current_user.is_admin:
            log.debug("User %s is admin - granted %s:%s", current_user.id, resource, action)
            return current_user

        if not await resolver.user_has_permission(current_user.id, resource, action):
            log.debug("User %s denied %s:%s", current_user.id, resource, action)
            raise Unauthorized(f"Permission denied: {action} on {resource}")

        return current_user

    return permission_dependency
