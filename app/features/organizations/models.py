"""
Organization model for the governance hierarchy.

Organizations form a forest through a nullable self-referential parent_id.
The tree is stored flat and assembled in memory (see service.get_tree).
"""
from sqlalchemy import String, ForeignKey, Boolean, Integer, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.core.database.base import Base, TimestampMixin, AuditMixin, generate_ulid


class OrganizationStatus(str, enum.Enum):
    """Lifecycle status of an organization."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISSOLVED = "DISSOLVED"


class OrganizationKind(str, enum.Enum):
    """Structural units sit in the hierarchy; working groups are ad hoc."""
    STRUCTURAL = "STRUCTURAL"
    WORKING_GROUP = "WORKING_GROUP"


class Organization(Base, TimestampMixin, AuditMixin):
    """
    Organization model representing a unit of the governance hierarchy
    (ministry, directorate, division, ...) or a working group.

    echelon is informational only; it is not checked against the parent's.
    """
    __tablename__ = "organizations"

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    abbreviation: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[OrganizationStatus] = mapped_column(
        SQLEnum(OrganizationStatus),
        default=OrganizationStatus.ACTIVE,
        nullable=False,
    )
    kind: Mapped[OrganizationKind] = mapped_column(
        SQLEnum(OrganizationKind),
        default=OrganizationKind.STRUCTURAL,
        nullable=False,
        index=True,
    )

    # Null means top of the hierarchy
    echelon: Mapped[int | None] = mapped_column(Integer, nullable=True)
    has_budget: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Tombstoning a parent does not touch its children
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"
