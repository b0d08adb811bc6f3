"""
Pydantic schemas for membership requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.features.memberships.models import MembershipRole
from app.features.users.schemas import UserPublic


class MembershipCreate(BaseModel):
    """Schema for adding a user to an organization."""
    organization_id: str = Field(..., description="Organization ID")
    user_id: str = Field(..., description="User ID")
    role: MembershipRole = MembershipRole.MEMBER
    start_date: datetime | None = Field(None, description="Defaults to now")
    notes: str | None = Field(None, max_length=2000)


class MembershipCreateByEmail(BaseModel):
    """Schema for adding a user to an organization by email address."""
    organization_id: str = Field(..., description="Organization ID")
    email: EmailStr
    role: MembershipRole = MembershipRole.MEMBER
    notes: str | None = Field(None, max_length=2000)


class MembershipRoleUpdate(BaseModel):
    role: MembershipRole


class MembershipResponse(BaseModel):
    """Schema for membership responses."""
    id: str
    organization_id: str
    user_id: str
    role: MembershipRole
    start_date: datetime
    end_date: datetime | None = None
    active: bool
    notes: str | None = None

    model_config = {"from_attributes": True}


class MemberResponse(MembershipResponse):
    """Membership with the member's public user information."""
    user: UserPublic
