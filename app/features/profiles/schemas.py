"""
Pydantic schemas for profile requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from app.features.profiles.models import ProfileKind


class ProfileCreate(BaseModel):
    """Schema for creating a profile for the current user."""
    name: str = Field(..., min_length=1, max_length=100)
    kind: ProfileKind = ProfileKind.PERSONAL
    organization_id: str | None = Field(None, description="Required for ORGANIZATIONAL profiles")
    is_default: bool = False
    description: str | None = Field(None, max_length=1000)
    avatar_url: str | None = Field(None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Profile name must not be empty")
        return v


class ProfileUpdate(BaseModel):
    """Only provided fields change."""
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    avatar_url: str | None = Field(None, max_length=500)
    is_default: bool | None = None


class ProfileResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    avatar_url: str | None = None
    kind: ProfileKind
    is_default: bool
    active: bool
    membership_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
