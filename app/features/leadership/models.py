"""
Leadership record model.

Each row is one tenure of a membership as the organization's leader. Records
are only created by the succession transaction and never hard-deleted.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Boolean, DateTime, Text, Index, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.utils import utcnow


class LeadershipType(str, enum.Enum):
    """Permanence of a leadership assignment."""
    DEFINITIVE = "DEFINITIVE"
    ACTING = "ACTING"
    ACTING_DAILY = "ACTING_DAILY"


class LeadershipRecord(Base, TimestampMixin):
    """
    Leadership tenure of a membership within an organization.

    One active record per organization, backed by a partial unique index so
    that two concurrent successions cannot both commit.
    """
    __tablename__ = "leadership_records"
    __table_args__ = (
        Index(
            "uq_leadership_records_active_org",
            "organization_id",
            unique=True,
            sqlite_where=text("active = 1"),
            postgresql_where=text("active = true"),
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id"),
        nullable=False,
        index=True
    )
    membership_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("memberships.id"),
        nullable=False,
        index=True
    )

    leadership_type: Mapped[LeadershipType] = mapped_column(SQLEnum(LeadershipType), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # The record this one superseded
    replaced_record_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("leadership_records.id"),
        nullable=True
    )
    assigned_by_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LeadershipRecord(id={self.id}, org_id={self.organization_id}, "
            f"type={self.leadership_type}, active={self.active})>"
        )
