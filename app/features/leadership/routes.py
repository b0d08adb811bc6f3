"""
Leadership feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user
from app.features.permissions.dependencies import require_permission
from app.features.organizations import service as organizations
from app.features.leadership import service
from app.features.leadership.models import LeadershipType
from app.features.leadership.schemas import (
    ActiveLeader,
    AssignLeader,
    LeadershipHistoryEntry,
    LeadershipRecordResponse,
)


router = APIRouter(tags=["leadership"])


@router.post("/", response_model=LeadershipRecordResponse, status_code=status.HTTP_201_CREATED)
async def assign_leader(
    data: AssignLeader,
    user: Annotated[User, Depends(require_permission("leadership", "assign"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Appoint a leader; the current one, if any, is retired in the same transaction."""
    await organizations.get_by_id(db, data.organization_id)
    return await service.assign_leader(
        db,
        organization_id=data.organization_id,
        membership_id=data.membership_id,
        leadership_type=data.leadership_type,
        reason=data.reason,
        assigned_by_id=user.id,
    )


@router.post("/{record_id}/end", response_model=LeadershipRecordResponse)
async def end_leadership(
    record_id: str,
    _user: Annotated[User, Depends(require_permission("leadership", "assign"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """End a tenure without appointing a successor."""
    return await service.end_leadership(db, record_id)


@router.get("/organizations/{organization_id}/active", response_model=ActiveLeader | None)
async def get_active_leader(
    organization_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Current leader of an organization, or null when vacant."""
    await organizations.get_by_id(db, organization_id)
    return await service.get_active_leader(db, organization_id)


@router.get("/organizations/{organization_id}/history", response_model=list[LeadershipHistoryEntry])
async def get_leadership_history(
    organization_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    await organizations.get_by_id(db, organization_id)
    return await service.get_history(db, organization_id)


@router.get(
    "/organizations/{organization_id}/types/{leadership_type}",
    response_model=list[LeadershipRecordResponse],
)
async def get_active_by_type(
    organization_id: str,
    leadership_type: LeadershipType,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_active_by_type(db, organization_id, leadership_type)


@router.get("/{record_id}", response_model=LeadershipRecordResponse)
async def get_record(
    record_id: str,
    _user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await service.get_record(db, record_id)
