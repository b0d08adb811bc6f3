"""
Profile model: a persona a user acts under.

A user may hold several profiles (personal, tied to an organization
membership, or external) and always acts under the default one.
"""
from sqlalchemy import String, ForeignKey, Boolean, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.core.database.base import Base, TimestampMixin, AuditMixin, generate_ulid


class ProfileKind(str, enum.Enum):
    PERSONAL = "PERSONAL"
    ORGANIZATIONAL = "ORGANIZATIONAL"
    EXTERNAL = "EXTERNAL"


class Profile(Base, TimestampMixin, AuditMixin):
    """
    User profile.

    A user with at least one live profile has exactly one default. Removed
    profiles keep their row with active=False and a deleted_at tombstone.
    """
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    kind: Mapped[ProfileKind] = mapped_column(
        SQLEnum(ProfileKind),
        default=ProfileKind.PERSONAL,
        nullable=False,
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Only set for ORGANIZATIONAL profiles
    membership_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("memberships.id"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return (
            f"<Profile(id={self.id}, user_id={self.user_id}, name={self.name!r}, "
            f"kind={self.kind}, default={self.is_default})>"
        )
