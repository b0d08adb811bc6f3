"""
Profile feature routes.

Users manage their own profiles; role assignment on a profile requires the
roles:manage permission.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Unauthorized
from app.features.users.models import User
from app.features.users.dependencies import get_current_user, get_current_user_id
from app.features.permissions import resolution
from app.features.permissions.dependencies import get_permission_resolver, require_permission
from app.features.permissions.resolution import PermissionResolver
from app.features.permissions.schemas import (
    EffectivePermissionsResponse,
    ReplaceProfileRoles,
    RoleAssignmentEntry,
    RoleResponse,
)
from app.features.profiles import service
from app.features.profiles.models import Profile
from app.features.profiles.schemas import ProfileCreate, ProfileUpdate, ProfileResponse


router = APIRouter(tags=["profiles"])


async def get_owned_profile(
    profile_id: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Profile:
    """Live profile of the current user (admins may read any)."""
    profile = await service.get_profile(db, profile_id)
    if profile.user_id != user.id and not user.is_admin:
        raise Unauthorized("Profile does not belong to this user")
    return profile


@router.post("/", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_profile(
    data: ProfileCreate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a profile for the current user."""
    return await service.create_profile(
        db,
        user_id=user.id,
        name=data.name,
        kind=data.kind,
        organization_id=data.organization_id,
        is_default=data.is_default,
        description=data.description,
        avatar_url=data.avatar_url,
        actor_id=user.id,
    )


@router.get("/", response_model=list[ProfileResponse])
async def list_my_profiles(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Current user's live profiles, default first."""
    return await service.list_user_profiles(db, user_id)


@router.get("/default", response_model=ProfileResponse | None)
async def get_my_default_profile(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_default_profile(db, user_id)


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_profile(
    profile: Annotated[Profile, Depends(get_owned_profile)]
):
    return profile


@router.patch("/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdate,
    profile: Annotated[Profile, Depends(get_owned_profile)],
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.update_profile(db, profile.id, data, actor_id=user.id)


@router.delete("/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(
    profile: Annotated[Profile, Depends(get_owned_profile)],
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a profile; the last one cannot be removed."""
    await service.delete_profile(db, profile.id, actor_id=user.id)


@router.post("/{profile_id}/switch", response_model=ProfileResponse)
async def switch_profile(
    profile_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Act as this profile from now on."""
    return await service.switch_profile(db, user_id, profile_id)


# Profile access

@router.get("/{profile_id}/permissions", response_model=EffectivePermissionsResponse)
async def get_profile_permissions(
    profile: Annotated[Profile, Depends(get_owned_profile)],
    resolver: Annotated[PermissionResolver, Depends(get_permission_resolver)]
):
    access = await resolver.for_profile(profile.id)
    return EffectivePermissionsResponse(
        subject_id=profile.id,
        permissions=sorted(access.permissions),
        roles=sorted(access.roles),
    )


@router.get("/{profile_id}/roles", response_model=list[RoleResponse])
async def get_profile_roles(
    profile: Annotated[Profile, Depends(get_owned_profile)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await resolution.get_profile_roles(db, profile.id)


@router.get("/{profile_id}/roles/history", response_model=list[RoleAssignmentEntry])
async def get_profile_role_history(
    profile: Annotated[Profile, Depends(get_owned_profile)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Role grants of the profile, newest first."""
    return await resolution.get_assignment_history(db, profile.id)


@router.put("/{profile_id}/roles", response_model=list[RoleResponse])
async def replace_profile_roles(
    profile_id: str,
    body: ReplaceProfileRoles,
    admin: Annotated[User, Depends(require_permission("roles", "manage"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Replace every role of a profile; an empty list strips them all."""
    return await resolution.replace_roles(db, profile_id, body.role_ids, assigned_by_id=admin.id)


@router.post("/{profile_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def assign_profile_role(
    profile_id: str,
    role_id: str,
    admin: Annotated[User, Depends(require_permission("roles", "manage"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    await resolution.assign_role(db, profile_id, role_id, assigned_by_id=admin.id)


@router.delete("/{profile_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_profile_role(
    profile_id: str,
    role_id: str,
    _admin: Annotated[User, Depends(require_permission("roles", "manage"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    await resolution.revoke_role(db, profile_id, role_id)
