"""
Organization feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user
from app.features.permissions.dependencies import require_permission
from app.features.organizations import service
from app.features.organizations.models import Organization, OrganizationKind
from app.features.organizations.schemas import (
    OrganizationCreate,
    OrganizationDetail,
    OrganizationResponse,
    OrganizationTreeNode,
    OrganizationUpdate,
)
from app.features.organizations.dependencies import get_organization_by_id


router = APIRouter(tags=["organizations"])


# Organization CRUD endpoints
@router.post("/", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    data: OrganizationCreate,
    user: Annotated[User, Depends(require_permission("organizations", "create"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a new organization."""
    return await service.create(db, data, actor_id=user.id)


@router.get("/", response_model=list[OrganizationResponse])
async def list_organizations(
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    kind: OrganizationKind | None = Query(None, description="Filter by kind")
):
    """List all live organizations by name."""
    return await service.get_all(db, kind)


@router.get("/tree", response_model=list[OrganizationTreeNode])
async def get_organization_tree(
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Whole hierarchy as a forest with active member counts."""
    return await service.get_tree(db)


@router.get("/parents", response_model=list[OrganizationResponse])
async def get_parent_candidates(
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    exclude_id: str | None = Query(None, description="Organization being edited; it and its subtree are left out")
):
    """Organizations that can be chosen as a parent."""
    return await service.get_parent_candidates(db, exclude_id)


@router.get("/{organization_id}", response_model=OrganizationDetail)
async def get_organization(
    organization_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Organization with member count and current leader."""
    return await service.get_detail(db, organization_id)


@router.get("/{organization_id}/path", response_model=list[OrganizationResponse])
async def get_ancestor_path(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Breadcrumb from the root down to this organization."""
    return await service.get_ancestor_path(db, organization.id)


@router.get("/{organization_id}/children", response_model=list[OrganizationResponse])
async def get_children(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_children(db, organization.id)


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    data: OrganizationUpdate,
    user: Annotated[User, Depends(require_permission("organizations", "update"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update organization fields; re-parenting under a descendant is rejected."""
    return await service.update(db, organization_id, data, actor_id=user.id)


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_id: str,
    user: Annotated[User, Depends(require_permission("organizations", "delete"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Soft-delete an organization. Children stay linked."""
    await service.soft_delete(db, organization_id, actor_id=user.id)
