"""
Permission management API routes.

Provides endpoints for the permission and role catalog, role grants, direct
user roles, and access checks for the session user.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Unauthorized
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions import catalog, resolution
from app.features.permissions.schemas import (
    PermissionCreate,
    PermissionUpdate,
    PermissionResponse,
    RoleCreate,
    RoleUpdate,
    RoleResponse,
    RoleWithPermissions,
    ReplaceRolePermissions,
    AssignRoleToUser,
    AssignRolesToUser,
    PermissionCheckRequest,
    PermissionCheckResponse,
    EffectivePermissionsResponse,
)
from app.features.permissions.dependencies import get_permission_resolver, require_permission
from app.features.permissions.resolution import PermissionResolver
from app.features.profiles.schemas import ProfileResponse
from app.features.profiles.service import get_profile
from app.features.users.schemas import UserPublic


router = APIRouter()


# ============================================================================
# Permission Routes
# ============================================================================

@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("permissions", "manage"))
):
    """Create a new permission."""
    return await catalog.create_permission(
        db, permission.resource, permission.action, permission.name, permission.description
    )


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    resource: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List permissions ordered by resource and action, optionally for one resource."""
    return await catalog.list_permissions(db, resource)


@router.get("/resources", response_model=List[str])
async def list_resources(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Distinct resource names in the catalog."""
    return await catalog.list_resources(db)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await catalog.get_permission(db, permission_id)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_update: PermissionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("permissions", "manage"))
):
    return await catalog.update_permission(
        db, permission_id, permission_update.model_dump(exclude_unset=True)
    )


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("permissions", "manage"))
):
    await catalog.delete_permission(db, permission_id)


# ============================================================================
# Role Routes
# ============================================================================

@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    return await catalog.create_role(db, role.name, role.description, role.is_system)


@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await catalog.list_roles(db)


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a role with its permissions."""
    role = await catalog.get_role(db, role_id)
    response = RoleWithPermissions.model_validate(role)
    response.permissions = [
        PermissionResponse.model_validate(p) for p in await catalog.get_role_permissions(db, role_id)
    ]
    return response


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    return await catalog.update_role(db, role_id, role_update.model_dump(exclude_unset=True))


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    """Delete a role (system roles are protected)."""
    await catalog.delete_role(db, role_id)


@router.get("/roles/{role_id}/users", response_model=List[UserPublic])
async def get_users_with_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Users holding a role directly."""
    return await catalog.get_users_with_role(db, role_id)


@router.get("/roles/{role_id}/profiles", response_model=List[ProfileResponse])
async def get_profiles_with_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    return await resolution.get_profiles_with_role(db, role_id)


# ============================================================================
# Role Permission Assignment Routes
# ============================================================================

@router.put("/roles/{role_id}/permissions", response_model=List[PermissionResponse])
async def replace_role_permissions(
    role_id: str,
    body: ReplaceRolePermissions,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    """Replace every permission of a role."""
    return await catalog.replace_role_permissions(db, role_id, body.permission_ids, current_user.id)


@router.post("/roles/{role_id}/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def assign_permission_to_role(
    role_id: str,
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    await catalog.assign_permission_to_role(db, role_id, permission_id, current_user.id)


@router.delete("/roles/{role_id}/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_permission_from_role(
    role_id: str,
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    await catalog.revoke_permission_from_role(db, role_id, permission_id)


# ============================================================================
# User Role Assignment Routes
# ============================================================================

@router.post("/user-roles", status_code=status.HTTP_204_NO_CONTENT)
async def assign_role_to_user(
    assignment: AssignRoleToUser,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    """Grant a role directly to a user (no-op when already held)."""
    await catalog.assign_role_to_user(db, assignment.user_id, assignment.role_id, current_user.id)


@router.delete("/user-roles/{user_id}/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_role_from_user(
    user_id: str,
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    await catalog.revoke_role_from_user(db, user_id, role_id)


@router.post("/user-roles/{user_id}/bulk", response_model=List[RoleResponse])
async def assign_roles_to_user(
    user_id: str,
    body: AssignRolesToUser,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    """Grant several roles at once; returns every role the user now holds."""
    return await catalog.assign_roles_to_user(db, user_id, body.role_ids, current_user.id)


@router.delete("/user-roles/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_all_roles_from_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("roles", "manage"))
):
    await catalog.revoke_all_roles_from_user(db, user_id)


@router.get("/user-roles/{user_id}", response_model=List[RoleResponse])
async def get_user_roles(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await catalog.get_user_roles(db, user_id)


# ============================================================================
# Access Checks
# ============================================================================

@router.get("/me", response_model=EffectivePermissionsResponse)
async def get_my_permissions(
    current_user: User = Depends(get_current_user),
    resolver: PermissionResolver = Depends(get_permission_resolver)
):
    """Effective permissions of the session user through direct roles."""
    access = await resolver.for_user(current_user.id)
    return EffectivePermissionsResponse(
        subject_id=current_user.id,
        permissions=sorted(access.permissions),
        roles=sorted(access.roles),
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    resolver: PermissionResolver = Depends(get_permission_resolver)
):
    """Check a permission for the session user, or for one of their profiles."""
    if check.profile_id:
        profile = await get_profile(db, check.profile_id)
        if profile.user_id != current_user.id and not current_user.is_admin:
            raise Unauthorized("Profile does not belong to this user")
        allowed = await resolver.has_permission(profile.id, check.resource, check.action)
    else:
        allowed = current_user.is_admin or await resolver.user_has_permission(
            current_user.id, check.resource, check.action
        )
    return PermissionCheckResponse(allowed=allowed, resource=check.resource, action=check.action)
