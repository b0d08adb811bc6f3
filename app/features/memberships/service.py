"""
Membership Service: membership lifecycle inside organizations.
"""
from datetime import datetime

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import config
from app.core.errors import Conflict, NotFound
from app.features.memberships.models import Membership, MembershipRole
from app.features.organizations import service as organizations
from app.features.users.models import User
from app.features.users.service import find_user_by_email, find_user_by_id
from app.utils import get_logger, utcnow


log = get_logger(__name__)


async def get_by_id(db: AsyncSession, membership_id: str) -> Membership:
    membership = await db.get(Membership, membership_id)
    if membership is None:
        raise NotFound("Membership not found")
    return membership


async def get_active_membership(db: AsyncSession, user_id: str, organization_id: str) -> Membership | None:
    result = await db.execute(
        select(Membership).where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
            Membership.active.is_(True),
        ).with_for_update()
    )
    return result.scalars().first()


async def add_member(
    db: AsyncSession,
    organization_id: str,
    user_id: str,
    role: MembershipRole = MembershipRole.MEMBER,
    start_date: datetime | None = None,
    notes: str | None = None,
) -> Membership:
    """
    Add a user to an organization.

    Raises:
        NotFound: user or organization absent (tombstoned counts as absent)
        Conflict: the user already holds an active membership there
    """
    if await find_user_by_id(db, user_id) is None:
        raise NotFound("User not found")
    if not await organizations.exists(db, organization_id):
        raise NotFound("Organization not found")

    # Checked in the same transaction as the insert
    if await get_active_membership(db, user_id, organization_id) is not None:
        raise Conflict("User is already an active member of this organization")

    membership = Membership(
        organization_id=organization_id,
        user_id=user_id,
        role=role,
        start_date=start_date or utcnow(),
        notes=notes,
        active=True,
    )
    db.add(membership)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        log.warning("Concurrent add of user %s to organization %s rejected", user_id, organization_id)
        raise Conflict("User is already an active member of this organization")

    await db.refresh(membership)
    log.info("Member added: user=%s org=%s role=%s", user_id, organization_id, role.value)
    return membership


async def add_member_by_email(
    db: AsyncSession,
    organization_id: str,
    email: str,
    role: MembershipRole = MembershipRole.MEMBER,
    notes: str | None = None,
) -> Membership:
    user = await find_user_by_email(db, email)
    if user is None:
        raise NotFound("No user with that email address")
    return await add_member(db, organization_id, user.id, role=role, notes=notes)


async def update_role(db: AsyncSession, membership_id: str, role: MembershipRole) -> Membership:
    """Change the role in place. No history row is written for role changes."""
    membership = await get_by_id(db, membership_id)
    membership.role = role
    await db.flush()
    log.info("Membership %s role changed to %s", membership_id, role.value)
    return membership


async def remove_member(db: AsyncSession, membership_id: str) -> Membership:
    """Deactivate a membership; removing an already inactive one is a no-op."""
    membership = await get_by_id(db, membership_id)
    if not membership.active:
        log.debug("Membership %s already inactive", membership_id)
        return membership

    membership.active = False
    membership.end_date = utcnow()
    await db.flush()
    log.info("Member removed: membership=%s org=%s", membership_id, membership.organization_id)
    return membership


async def list_members(db: AsyncSession, organization_id: str) -> list[Membership]:
    """Active memberships of an organization, most recent first."""
    result = await db.execute(
        select(Membership)
        .options(selectinload(Membership.user))
        .where(Membership.organization_id == organization_id, Membership.active.is_(True))
        .order_by(Membership.start_date.desc(), Membership.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_user_memberships(db: AsyncSession, user_id: str) -> list[Membership]:
    result = await db.execute(
        select(Membership)
        .where(Membership.user_id == user_id, Membership.active.is_(True))
        .order_by(Membership.start_date.desc())
    )
    return list(result.scalars().all())


async def get_member_count(db: AsyncSession, organization_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Membership).where(
            Membership.organization_id == organization_id, Membership.active.is_(True)
        )
    )
    return result.scalar_one()


async def is_valid_membership(db: AsyncSession, membership_id: str) -> bool:
    membership = await db.get(Membership, membership_id)
    return membership is not None and membership.active


async def search_users_for_org(
    db: AsyncSession,
    query: str,
    organization_id: str | None = None,
    limit: int = config.USER_SEARCH_LIMIT,
) -> list[User]:
    """
    Case-insensitive substring search on name or email for the member picker,
    leaving out users who already hold an active membership in organization_id.
    """
    term = query.strip().lower()
    # Wildcard characters in term match literally
    stmt = select(User).where(
        or_(
            func.lower(User.name).contains(term, autoescape=True),
            func.lower(User.email).contains(term, autoescape=True),
        )
    )
    if organization_id:
        active_members = select(Membership.user_id).where(
            Membership.organization_id == organization_id, Membership.active.is_(True)
        )
        stmt = stmt.where(User.id.not_in(active_members))

    result = await db.execute(stmt.order_by(User.name, User.email).limit(limit))
    return list(result.scalars().all())
