"""
Profile Service: per-user personas and the single-default rule.

Every change to the default flag is clear-then-set inside the caller's
transaction: all defaults of the user are cleared with one UPDATE, then the
chosen profile is marked.
"""
from typing import Any

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound, Unauthorized, ValidationError
from app.features.memberships.service import get_active_membership
from app.features.organizations import service as organizations
from app.features.profiles.models import Profile, ProfileKind
from app.features.profiles.schemas import ProfileUpdate
from app.features.users.service import find_user_by_id
from app.utils import get_logger, utcnow


log = get_logger(__name__)


def _live():
    return (Profile.active.is_(True), Profile.deleted_at.is_(None))


async def _clear_defaults(db: AsyncSession, user_id: str, except_id: str | None = None) -> None:
    stmt = update(Profile).where(Profile.user_id == user_id, Profile.is_default.is_(True))
    if except_id is not None:
        stmt = stmt.where(Profile.id != except_id)
    await db.execute(stmt.values(is_default=False))


async def _live_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Profile).where(Profile.user_id == user_id, *_live())
    )
    return result.scalar_one()


async def _name_taken(db: AsyncSession, user_id: str, name: str, except_id: str | None = None) -> bool:
    stmt = select(Profile.id).where(
        Profile.user_id == user_id,
        func.lower(Profile.name) == name.lower(),
        *_live(),
    )
    if except_id is not None:
        stmt = stmt.where(Profile.id != except_id)
    result = await db.execute(stmt.limit(1))
    return result.first() is not None


async def get_profile(db: AsyncSession, profile_id: str) -> Profile:
    """Live profile or NotFound."""
    profile = await db.get(Profile, profile_id)
    if profile is None or not profile.active or profile.is_deleted:
        raise NotFound("Profile not found")
    return profile


async def get_default_profile(db: AsyncSession, user_id: str) -> Profile | None:
    result = await db.execute(
        select(Profile).where(Profile.user_id == user_id, Profile.is_default.is_(True), *_live())
    )
    return result.scalars().first()


async def list_user_profiles(db: AsyncSession, user_id: str) -> list[Profile]:
    """Live profiles of a user, default first, then in creation order."""
    result = await db.execute(
        select(Profile)
        .where(Profile.user_id == user_id, *_live())
        .order_by(Profile.is_default.desc(), Profile.created_at, Profile.id)
    )
    return list(result.scalars().all())


async def create_profile(
    db: AsyncSession,
    user_id: str,
    name: str,
    kind: ProfileKind = ProfileKind.PERSONAL,
    organization_id: str | None = None,
    is_default: bool = False,
    description: str | None = None,
    avatar_url: str | None = None,
    actor_id: str | None = None,
) -> Profile:
    """
    Create a profile for a user.

    The first live profile of a user always becomes the default.

    Raises:
        NotFound: user absent
        Conflict: the user already has a live profile with that name
        ValidationError: ORGANIZATIONAL without an active membership in organization_id
    """
    if await find_user_by_id(db, user_id) is None:
        raise NotFound("User not found")

    name = (name or "").strip()
    if not name:
        raise ValidationError("Profile name is required")
    if await _name_taken(db, user_id, name):
        raise Conflict("A profile with this name already exists")

    membership_id = None
    if kind == ProfileKind.ORGANIZATIONAL:
        if not organization_id:
            raise ValidationError("Organizational profiles need an organization")
        if not await organizations.exists(db, organization_id):
            raise ValidationError("Organization does not exist")
        membership = await get_active_membership(db, user_id, organization_id)
        if membership is None:
            raise ValidationError("User is not an active member of this organization")
        membership_id = membership.id

    if not is_default and await _live_count(db, user_id) == 0:
        is_default = True
    if is_default:
        await _clear_defaults(db, user_id)

    profile = Profile(
        user_id=user_id,
        name=name,
        kind=kind,
        membership_id=membership_id,
        is_default=is_default,
        description=description,
        avatar_url=avatar_url,
        active=True,
        created_by_id=actor_id,
    )
    db.add(profile)
    await db.flush()
    await db.refresh(profile)

    log.info("Profile created: %s user=%s kind=%s default=%s", profile.id, user_id, kind.value, is_default)
    return profile


async def update_profile(
    db: AsyncSession,
    profile_id: str,
    data: ProfileUpdate | dict[str, Any],
    actor_id: str | None,
) -> Profile:
    """
    Merge the provided fields into a live profile.

    Setting is_default moves the default here. Clearing it on the current
    default is rejected; switch to another profile instead.
    """
    profile = await get_profile(db, profile_id)
    changes = data.model_dump(exclude_unset=True) if isinstance(data, ProfileUpdate) else dict(data)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Profile name is required")
        if await _name_taken(db, profile.user_id, name, except_id=profile.id):
            raise Conflict("A profile with this name already exists")
        changes["name"] = name

    make_default = changes.pop("is_default", None)
    if make_default is False and profile.is_default:
        raise ValidationError("Cannot unset the default profile; switch to another profile instead")
    if make_default:
        await _clear_defaults(db, profile.user_id, except_id=profile.id)
        profile.is_default = True

    for key, value in changes.items():
        setattr(profile, key, value)
    profile.updated_by_id = actor_id
    profile.updated_at = utcnow()

    await db.flush()
    await db.refresh(profile)
    log.info("Profile updated: %s fields=%s", profile_id, sorted(changes))
    return profile


async def delete_profile(db: AsyncSession, profile_id: str, actor_id: str | None) -> None:
    """
    Soft-remove a profile. The last live profile of a user cannot be removed.
    Removing the default promotes the oldest remaining live profile.
    """
    profile = await get_profile(db, profile_id)
    if await _live_count(db, profile.user_id) <= 1:
        raise Conflict("Cannot delete the only profile of a user")

    was_default = profile.is_default
    now = utcnow()
    profile.active = False
    profile.is_default = False
    profile.deleted_at = now
    profile.deleted_by_id = actor_id
    profile.updated_by_id = actor_id
    profile.updated_at = now
    await db.flush()

    if was_default:
        result = await db.execute(
            select(Profile)
            .where(Profile.user_id == profile.user_id, *_live())
            .order_by(Profile.created_at, Profile.id)
            .limit(1)
        )
        successor = result.scalars().first()
        successor.is_default = True
        await db.flush()
        log.info("Default profile of user %s moved to %s", profile.user_id, successor.id)

    log.info("Profile removed: %s by %s", profile_id, actor_id)


async def switch_profile(db: AsyncSession, user_id: str, profile_id: str) -> Profile:
    """
    Make profile_id the default profile of user_id.

    Raises:
        NotFound: profile absent
        Unauthorized: profile belongs to another user
        ValidationError: profile has been removed or deactivated
    """
    profile = await db.get(Profile, profile_id)
    if profile is None:
        raise NotFound("Profile not found")
    if profile.user_id != user_id:
        raise Unauthorized("Profile does not belong to this user")
    if not profile.active or profile.is_deleted:
        raise ValidationError("Profile is not active")

    await _clear_defaults(db, user_id)
    profile.is_default = True
    await db.flush()
    await db.refresh(profile)

    log.info("Profile switched: user=%s profile=%s", user_id, profile_id)
    return profile
