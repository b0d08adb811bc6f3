"""
Pydantic schemas for leadership succession.
"""
from datetime import datetime
from pydantic import BaseModel, Field

from app.features.leadership.models import LeadershipType


class AssignLeader(BaseModel):
    """Schema for appointing a leader; the current holder is retired automatically."""
    organization_id: str = Field(..., description="Organization ID")
    membership_id: str = Field(..., description="Membership of the new leader in that organization")
    leadership_type: LeadershipType
    reason: str | None = Field(None, max_length=2000)


class LeadershipRecordResponse(BaseModel):
    id: str
    organization_id: str
    membership_id: str
    leadership_type: LeadershipType
    start_date: datetime
    end_date: datetime | None = None
    active: bool
    reason: str | None = None
    replaced_record_id: str | None = None
    assigned_by_id: str | None = None

    model_config = {"from_attributes": True}


class ActiveLeader(BaseModel):
    """Simplified view of an organization's current leader."""
    record_id: str
    user_id: str
    name: str
    email: str
    leadership_type: LeadershipType
    start_date: datetime


class LeadershipSummary(BaseModel):
    """Compact view of a record, used to show what a history entry replaced."""
    id: str
    name: str
    leadership_type: LeadershipType
    start_date: datetime
    end_date: datetime | None = None


class LeadershipHistoryEntry(LeadershipRecordResponse):
    name: str
    email: str
    replaced_record: LeadershipSummary | None = None
