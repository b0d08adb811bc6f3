"""
Pydantic schemas for organization-related requests and responses.
"""
from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from app.features.organizations.models import OrganizationKind, OrganizationStatus
from app.features.leadership.schemas import ActiveLeader


class OrganizationBase(BaseModel):
    """Base organization schema."""
    name: str = Field(..., max_length=255)
    abbreviation: str | None = Field(None, max_length=50)
    status: OrganizationStatus = OrganizationStatus.ACTIVE
    kind: OrganizationKind = OrganizationKind.STRUCTURAL
    echelon: int | None = Field(None, ge=1, le=20, description="Null means top of hierarchy")
    has_budget: bool = False
    parent_id: str | None = Field(None, description="Parent organization ID")


class OrganizationCreate(OrganizationBase):
    """Schema for creating a new organization."""
    pass


class OrganizationUpdate(BaseModel):
    """Schema for updating organization information. Only provided fields change."""
    name: str | None = Field(None, max_length=255)
    abbreviation: str | None = Field(None, max_length=50)
    status: OrganizationStatus | None = None
    kind: OrganizationKind | None = None
    echelon: int | None = Field(None, ge=1, le=20)
    has_budget: bool | None = None
    parent_id: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Organization name must not be empty")
        return v


class OrganizationResponse(OrganizationBase):
    """Schema for organization responses."""
    id: str
    created_at: datetime
    updated_at: datetime
    created_by_id: str | None = None
    updated_by_id: str | None = None

    model_config = {"from_attributes": True}


class OrganizationDetail(OrganizationResponse):
    """Organization with its headcount and current leader."""
    member_count: int = 0
    active_leader: ActiveLeader | None = None


class OrganizationTreeNode(BaseModel):
    """One node of the organization forest."""
    id: str
    name: str
    abbreviation: str | None = None
    status: OrganizationStatus
    kind: OrganizationKind
    echelon: int | None = None
    has_budget: bool
    parent_id: str | None = None
    member_count: int = 0
    children: list[OrganizationTreeNode] = Field(default_factory=list)

    model_config = {"from_attributes": True}


OrganizationTreeNode.model_rebuild()
