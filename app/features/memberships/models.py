"""
Membership model: a time-bounded association of a user with an organization.

Rows are never deleted; removal deactivates them and stamps end_date so the
membership history survives.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Boolean, DateTime, Text, Index, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.utils import utcnow


class MembershipRole(str, enum.Enum):
    """Role a person holds inside an organization."""
    MEMBER = "MEMBER"
    OFFICER = "OFFICER"
    ACTING = "ACTING"
    ACTING_DAILY = "ACTING_DAILY"
    ADMIN = "ADMIN"


class Membership(Base, TimestampMixin):
    """
    Membership of a user in an organization.

    At most one active row per (user, organization): the service checks before
    insert and the partial unique index rejects whatever slips past it.
    """
    __tablename__ = "memberships"
    __table_args__ = (
        Index(
            "uq_memberships_active_user_org",
            "user_id",
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
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )

    role: Mapped[MembershipRole] = mapped_column(
        SQLEnum(MembershipRole),
        default=MembershipRole.MEMBER,
        nullable=False,
    )
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship("User", lazy="selectin")  # type: ignore

    def __repr__(self) -> str:
        return (
            f"<Membership(id={self.id}, user_id={self.user_id}, org_id={self.organization_id}, "
            f"role={self.role}, active={self.active})>"
        )
