"""
Permission Resolution Service.

Effective access of a subject is the union of the permissions of every role
reachable from it:

    profile -> profile_roles -> roles -> role_permissions -> permissions
    user    -> user_roles    -> roles -> role_permissions -> permissions

Each aggregation is one outer-join query that also yields the role names, so
a role without permissions still counts for has_role. PermissionResolver
caches aggregations for the lifetime of a request; every check after the
first is a set lookup.
"""
from dataclasses import dataclass

from sqlalchemy import select, delete, insert, Table
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound, ValidationError
from app.features.permissions.models import Permission, Role, profile_roles, role_permissions, user_roles
from app.features.permissions.schemas import RoleAssignmentEntry
from app.features.profiles.models import Profile
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class EffectiveAccess:
    """Aggregated access of one subject."""
    permissions: frozenset[str]
    roles: frozenset[str]

    def allows(self, resource: str, action: str) -> bool:
        return f"{resource}:{action}" in self.permissions

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles


async def _aggregate(db: AsyncSession, link: Table, subject_column, subject_id: str) -> EffectiveAccess:
    result = await db.execute(
        select(Role.name, Permission.resource, Permission.action)
        .select_from(link)
        .join(Role, Role.id == link.c.role_id)
        .outerjoin(role_permissions, role_permissions.c.role_id == Role.id)
        .outerjoin(Permission, Permission.id == role_permissions.c.permission_id)
        .where(subject_column == subject_id)
    )
    roles: set[str] = set()
    permissions: set[str] = set()
    for role_name, resource, action in result.all():
        roles.add(role_name)
        if resource is not None:
            permissions.add(f"{resource}:{action}")
    return EffectiveAccess(frozenset(permissions), frozenset(roles))


async def get_profile_access(db: AsyncSession, profile_id: str) -> EffectiveAccess:
    return await _aggregate(db, profile_roles, profile_roles.c.profile_id, profile_id)


async def get_user_access(db: AsyncSession, user_id: str) -> EffectiveAccess:
    return await _aggregate(db, user_roles, user_roles.c.user_id, user_id)


async def get_profile_permissions(db: AsyncSession, profile_id: str) -> frozenset[str]:
    """Deduplicated resource:action pairs granted to a profile."""
    return (await get_profile_access(db, profile_id)).permissions


async def get_user_permissions(db: AsyncSession, user_id: str) -> frozenset[str]:
    """Same aggregation rooted at direct user role assignments, bypassing profiles."""
    return (await get_user_access(db, user_id)).permissions


class PermissionResolver:
    """
    Request-scoped access cache.

    Usage:
        resolver = PermissionResolver(db)
        if await resolver.has_permission(profile_id, "organizations", "update"):
            ...

    Cached access does not see role changes made later in the same request
    until the subject is invalidated.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._profiles: dict[str, EffectiveAccess] = {}
        self._users: dict[str, EffectiveAccess] = {}

    async def for_profile(self, profile_id: str) -> EffectiveAccess:
        if profile_id not in self._profiles:
            self._profiles[profile_id] = await get_profile_access(self.db, profile_id)
        return self._profiles[profile_id]

    async def for_user(self, user_id: str) -> EffectiveAccess:
        if user_id not in self._users:
            self._users[user_id] = await get_user_access(self.db, user_id)
        return self._users[user_id]

    async def has_permission(self, profile_id: str, resource: str, action: str) -> bool:
        return (await self.for_profile(profile_id)).allows(resource, action)

    async def has_role(self, profile_id: str, role_name: str) -> bool:
        return (await self.for_profile(profile_id)).has_role(role_name)

    async def user_has_permission(self, user_id: str, resource: str, action: str) -> bool:
        return (await self.for_user(user_id)).allows(resource, action)

    async def user_has_role(self, user_id: str, role_name: str) -> bool:
        return (await self.for_user(user_id)).has_role(role_name)

    def invalidate(self, profile_id: str | None = None, user_id: str | None = None) -> None:
        if profile_id is not None:
            self._profiles.pop(profile_id, None)
        if user_id is not None:
            self._users.pop(user_id, None)


# ============================================================================
# Profile role assignment
# ============================================================================

async def _require_profile(db: AsyncSession, profile_id: str) -> Profile:
    profile = await db.get(Profile, profile_id)
    if profile is None or profile.is_deleted:
        raise NotFound("Profile not found")
    return profile


async def _profile_holds(db: AsyncSession, profile_id: str, role_id: str) -> bool:
    result = await db.execute(
        select(profile_roles.c.role_id).where(
            profile_roles.c.profile_id == profile_id, profile_roles.c.role_id == role_id
        )
    )
    return result.first() is not None


async def get_profile_roles(db: AsyncSession, profile_id: str) -> list[Role]:
    await _require_profile(db, profile_id)
    result = await db.execute(
        select(Role)
        .join(profile_roles, profile_roles.c.role_id == Role.id)
        .where(profile_roles.c.profile_id == profile_id)
        .order_by(Role.name)
    )
    return list(result.scalars().all())


async def replace_roles(
    db: AsyncSession,
    profile_id: str,
    role_ids: list[str],
    assigned_by_id: str | None = None,
) -> list[Role]:
    """
    Replace every role of a profile with role_ids; an empty list strips them all.

    Raises:
        NotFound: profile absent
        ValidationError: any role id unknown (nothing is changed)
    """
    await _require_profile(db, profile_id)
    wanted = set(role_ids)
    if wanted:
        result = await db.execute(select(Role.id).where(Role.id.in_(wanted)))
        missing = wanted - set(result.scalars().all())
        if missing:
            raise ValidationError(f"Unknown role ids: {', '.join(sorted(missing))}")

    await db.execute(delete(profile_roles).where(profile_roles.c.profile_id == profile_id))
    if wanted:
        await db.execute(
            insert(profile_roles),
            [
                {"profile_id": profile_id, "role_id": role_id, "assigned_by_id": assigned_by_id}
                for role_id in sorted(wanted)
            ],
        )
    log.info("Profile %s roles replaced (%d roles)", profile_id, len(wanted))
    return await get_profile_roles(db, profile_id)


async def assign_role(
    db: AsyncSession,
    profile_id: str,
    role_id: str,
    assigned_by_id: str | None = None,
) -> None:
    await _require_profile(db, profile_id)
    if await db.get(Role, role_id) is None:
        raise NotFound("Role not found")
    if await _profile_holds(db, profile_id, role_id):
        raise Conflict("Profile already holds this role")

    await db.execute(
        insert(profile_roles).values(profile_id=profile_id, role_id=role_id, assigned_by_id=assigned_by_id)
    )
    log.info("Role %s assigned to profile %s", role_id, profile_id)


async def revoke_role(db: AsyncSession, profile_id: str, role_id: str) -> None:
    if not await _profile_holds(db, profile_id, role_id):
        raise NotFound("Profile does not hold this role")
    await db.execute(
        delete(profile_roles).where(
            profile_roles.c.profile_id == profile_id, profile_roles.c.role_id == role_id
        )
    )
    log.info("Role %s revoked from profile %s", role_id, profile_id)


async def get_profiles_with_role(db: AsyncSession, role_id: str) -> list[Profile]:
    """Live profiles currently holding a role."""
    if await db.get(Role, role_id) is None:
        raise NotFound("Role not found")
    result = await db.execute(
        select(Profile)
        .join(profile_roles, profile_roles.c.profile_id == Profile.id)
        .where(profile_roles.c.role_id == role_id, Profile.active.is_(True), Profile.deleted_at.is_(None))
        .order_by(Profile.name, Profile.id)
    )
    return list(result.scalars().all())


async def get_assignment_history(db: AsyncSession, profile_id: str) -> list[RoleAssignmentEntry]:
    """Role grants of a profile, most recent first."""
    await _require_profile(db, profile_id)
    result = await db.execute(
        select(Role.id, Role.name, profile_roles.c.assigned_at, profile_roles.c.assigned_by_id)
        .join(profile_roles, profile_roles.c.role_id == Role.id)
        .where(profile_roles.c.profile_id == profile_id)
        .order_by(profile_roles.c.assigned_at.desc(), Role.name)
    )
    return [
        RoleAssignmentEntry(role_id=role_id, role_name=name, assigned_at=assigned_at, assigned_by_id=assigned_by_id)
        for role_id, name, assigned_at, assigned_by_id in result.all()
    ]
