"""
Membership feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.schemas import UserPublic
from app.features.users.dependencies import get_current_user, get_current_user_id
from app.features.permissions.dependencies import require_permission
from app.features.organizations import service as organizations
from app.features.memberships import service
from app.features.memberships.schemas import (
    MemberResponse,
    MembershipCreate,
    MembershipCreateByEmail,
    MembershipResponse,
    MembershipRoleUpdate,
)


router = APIRouter(tags=["memberships"])


@router.post("/", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    data: MembershipCreate,
    _user: Annotated[User, Depends(require_permission("memberships", "create"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add a user to an organization."""
    return await service.add_member(
        db,
        organization_id=data.organization_id,
        user_id=data.user_id,
        role=data.role,
        start_date=data.start_date,
        notes=data.notes,
    )


@router.post("/by-email", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_member_by_email(
    data: MembershipCreateByEmail,
    _user: Annotated[User, Depends(require_permission("memberships", "create"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add a user to an organization by email address."""
    return await service.add_member_by_email(
        db, organization_id=data.organization_id, email=data.email, role=data.role, notes=data.notes
    )


@router.get("/my", response_model=list[MembershipResponse])
async def get_my_memberships(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Active memberships of the current user."""
    return await service.list_user_memberships(db, user_id)


@router.get("/search-users", response_model=list[UserPublic])
async def search_users(
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    q: str = Query(..., min_length=1, description="Name or email fragment"),
    organization_id: str | None = Query(None, description="Leave out active members of this organization"),
):
    """Member picker search."""
    return await service.search_users_for_org(db, q, organization_id)


@router.get("/organizations/{organization_id}", response_model=list[MemberResponse])
async def list_members(
    organization_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Active members of an organization, most recent first."""
    await organizations.get_by_id(db, organization_id)
    return await service.list_members(db, organization_id)


@router.get("/{membership_id}", response_model=MembershipResponse)
async def get_membership(
    membership_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_by_id(db, membership_id)


@router.patch("/{membership_id}/role", response_model=MembershipResponse)
async def update_member_role(
    membership_id: str,
    data: MembershipRoleUpdate,
    _user: Annotated[User, Depends(require_permission("memberships", "update"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.update_role(db, membership_id, data.role)


@router.delete("/{membership_id}", response_model=MembershipResponse)
async def remove_member(
    membership_id: str,
    _user: Annotated[User, Depends(require_permission("memberships", "delete"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Deactivate a membership. The row is kept with its end date."""
    return await service.remove_member(db, membership_id)
