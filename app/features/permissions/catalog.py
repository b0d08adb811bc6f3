"""
Role/Permission Catalog: CRUD for roles and permissions, role grants, and
direct user role assignments.
"""
from typing import Any

from sqlalchemy import select, delete, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound, ValidationError
from app.features.permissions.models import Permission, Role, profile_roles, role_permissions, user_roles
from app.features.users.models import User
from app.features.users.service import find_user_by_id
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Permissions
# ============================================================================

async def get_permission(db: AsyncSession, permission_id: str) -> Permission:
    permission = await db.get(Permission, permission_id)
    if permission is None:
        raise NotFound("Permission not found")
    return permission


async def list_permissions(db: AsyncSession, resource: str | None = None) -> list[Permission]:
    stmt = select(Permission)
    if resource:
        stmt = stmt.where(Permission.resource == resource)
    result = await db.execute(stmt.order_by(Permission.resource, Permission.action))
    return list(result.scalars().all())


async def list_resources(db: AsyncSession) -> list[str]:
    result = await db.execute(select(Permission.resource).distinct().order_by(Permission.resource))
    return list(result.scalars().all())


async def create_permission(
    db: AsyncSession,
    resource: str,
    action: str,
    name: str | None = None,
    description: str | None = None,
) -> Permission:
    """Raises Conflict when (resource, action) is already in the catalog."""
    existing = await db.execute(
        select(Permission.id).where(Permission.resource == resource, Permission.action == action)
    )
    if existing.first() is not None:
        raise Conflict(f"Permission {resource}:{action} already exists")

    permission = Permission(
        resource=resource,
        action=action,
        name=name or f"{resource}:{action}",
        description=description,
    )
    db.add(permission)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"Permission {resource}:{action} already exists")

    await db.refresh(permission)
    log.info("Permission created: %s (%s:%s)", permission.id, resource, action)
    return permission


async def update_permission(db: AsyncSession, permission_id: str, changes: dict[str, Any]) -> Permission:
    """Only name and description are mutable; resource and action identify the grant."""
    permission = await get_permission(db, permission_id)
    for key in ("name", "description"):
        if key in changes:
            setattr(permission, key, changes[key])
    await db.flush()
    await db.refresh(permission)
    return permission


async def delete_permission(db: AsyncSession, permission_id: str) -> None:
    permission = await get_permission(db, permission_id)
    await db.execute(delete(role_permissions).where(role_permissions.c.permission_id == permission_id))
    await db.delete(permission)
    await db.flush()
    log.info("Permission deleted: %s (%s)", permission_id, permission.key)


# ============================================================================
# Roles
# ============================================================================

async def get_role(db: AsyncSession, role_id: str) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise NotFound("Role not found")
    return role


async def get_role_by_name(db: AsyncSession, name: str) -> Role | None:
    result = await db.execute(select(Role).where(Role.name == name))
    return result.scalars().first()


async def list_roles(db: AsyncSession) -> list[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


async def create_role(
    db: AsyncSession,
    name: str,
    description: str | None = None,
    is_system: bool = False,
) -> Role:
    """Raises Conflict when the name is taken."""
    if await get_role_by_name(db, name) is not None:
        raise Conflict(f"Role {name!r} already exists")

    role = Role(name=name, description=description, is_system=is_system)
    db.add(role)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"Role {name!r} already exists")

    await db.refresh(role)
    log.info("Role created: %s (%s)", role.id, name)
    return role


async def update_role(db: AsyncSession, role_id: str, changes: dict[str, Any]) -> Role:
    role = await get_role(db, role_id)
    new_name = changes.get("name")
    if new_name and new_name != role.name:
        if await get_role_by_name(db, new_name) is not None:
            raise Conflict(f"Role {new_name!r} already exists")
        role.name = new_name
    if "description" in changes:
        role.description = changes["description"]
    await db.flush()
    await db.refresh(role)
    return role


async def delete_role(db: AsyncSession, role_id: str) -> None:
    """System roles cannot be deleted. Grants and assignments go with the role."""
    role = await get_role(db, role_id)
    if role.is_system:
        raise Conflict("System roles cannot be deleted")

    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    await db.execute(delete(profile_roles).where(profile_roles.c.role_id == role_id))
    await db.execute(delete(user_roles).where(user_roles.c.role_id == role_id))
    await db.delete(role)
    await db.flush()
    log.info("Role deleted: %s (%s)", role_id, role.name)


# ============================================================================
# Role permissions
# ============================================================================

async def get_role_permissions(db: AsyncSession, role_id: str) -> list[Permission]:
    await get_role(db, role_id)
    result = await db.execute(
        select(Permission)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .where(role_permissions.c.role_id == role_id)
        .order_by(Permission.resource, Permission.action)
    )
    return list(result.scalars().all())


async def replace_role_permissions(
    db: AsyncSession,
    role_id: str,
    permission_ids: list[str],
    assigned_by_id: str | None = None,
) -> list[Permission]:
    """Replace every grant of a role. Unknown permission ids reject the whole set."""
    await get_role(db, role_id)
    wanted = set(permission_ids)
    if wanted:
        result = await db.execute(select(Permission.id).where(Permission.id.in_(wanted)))
        missing = wanted - set(result.scalars().all())
        if missing:
            raise ValidationError(f"Unknown permission ids: {', '.join(sorted(missing))}")

    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    if wanted:
        await db.execute(
            insert(role_permissions),
            [
                {"role_id": role_id, "permission_id": pid, "assigned_by_id": assigned_by_id}
                for pid in sorted(wanted)
            ],
        )
    log.info("Role %s permissions replaced (%d grants)", role_id, len(wanted))
    return await get_role_permissions(db, role_id)


async def _role_has_permission(db: AsyncSession, role_id: str, permission_id: str) -> bool:
    result = await db.execute(
        select(role_permissions.c.role_id).where(
            role_permissions.c.role_id == role_id,
            role_permissions.c.permission_id == permission_id,
        )
    )
    return result.first() is not None


async def assign_permission_to_role(
    db: AsyncSession,
    role_id: str,
    permission_id: str,
    assigned_by_id: str | None = None,
) -> None:
    await get_role(db, role_id)
    await get_permission(db, permission_id)
    if await _role_has_permission(db, role_id, permission_id):
        raise Conflict("Permission already granted to this role")

    await db.execute(
        insert(role_permissions).values(
            role_id=role_id, permission_id=permission_id, assigned_by_id=assigned_by_id
        )
    )
    log.info("Permission %s granted to role %s", permission_id, role_id)


async def revoke_permission_from_role(db: AsyncSession, role_id: str, permission_id: str) -> None:
    if not await _role_has_permission(db, role_id, permission_id):
        raise NotFound("Permission is not granted to this role")
    await db.execute(
        delete(role_permissions).where(
            role_permissions.c.role_id == role_id,
            role_permissions.c.permission_id == permission_id,
        )
    )
    log.info("Permission %s revoked from role %s", permission_id, role_id)


# ============================================================================
# Direct user roles
# ============================================================================

async def get_user_roles(db: AsyncSession, user_id: str) -> list[Role]:
    result = await db.execute(
        select(Role)
        .join(user_roles, user_roles.c.role_id == Role.id)
        .where(user_roles.c.user_id == user_id)
        .order_by(Role.name)
    )
    return list(result.scalars().all())


async def assign_role_to_user(
    db: AsyncSession,
    user_id: str,
    role_id: str,
    assigned_by_id: str | None = None,
) -> None:
    """Grant a role directly to a user. Granting a role the user already holds is a no-op."""
    if await find_user_by_id(db, user_id) is None:
        raise NotFound("User not found")
    await get_role(db, role_id)

    existing = await db.execute(
        select(user_roles.c.user_id).where(user_roles.c.user_id == user_id, user_roles.c.role_id == role_id)
    )
    if existing.first() is not None:
        log.debug("User %s already holds role %s", user_id, role_id)
        return

    await db.execute(
        insert(user_roles).values(user_id=user_id, role_id=role_id, assigned_by_id=assigned_by_id)
    )
    log.info("Role %s assigned to user %s", role_id, user_id)


async def revoke_role_from_user(db: AsyncSession, user_id: str, role_id: str) -> None:
    result = await db.execute(
        delete(user_roles).where(user_roles.c.user_id == user_id, user_roles.c.role_id == role_id)
    )
    if result.rowcount == 0:
        raise NotFound("User does not hold this role")
    log.info("Role %s revoked from user %s", role_id, user_id)


async def assign_roles_to_user(
    db: AsyncSession,
    user_id: str,
    role_ids: list[str],
    assigned_by_id: str | None = None,
) -> list[Role]:
    """
    Grant several roles at once; roles already held are skipped.

    Raises:
        NotFound: user absent
        ValidationError: any role id unknown (nothing is granted)
    """
    if await find_user_by_id(db, user_id) is None:
        raise NotFound("User not found")
    wanted = set(role_ids)
    if wanted:
        result = await db.execute(select(Role.id).where(Role.id.in_(wanted)))
        missing = wanted - set(result.scalars().all())
        if missing:
            raise ValidationError(f"Unknown role ids: {', '.join(sorted(missing))}")

    held = await db.execute(select(user_roles.c.role_id).where(user_roles.c.user_id == user_id))
    new = wanted - set(held.scalars().all())
    if new:
        await db.execute(
            insert(user_roles),
            [{"user_id": user_id, "role_id": role_id, "assigned_by_id": assigned_by_id} for role_id in sorted(new)],
        )
    log.info("User %s granted %d new roles", user_id, len(new))
    return await get_user_roles(db, user_id)


async def revoke_all_roles_from_user(db: AsyncSession, user_id: str) -> int:
    """Strip every direct role from a user; returns how many were removed."""
    result = await db.execute(delete(user_roles).where(user_roles.c.user_id == user_id))
    log.info("All roles revoked from user %s (%d)", user_id, result.rowcount)
    return result.rowcount


async def get_users_with_role(db: AsyncSession, role_id: str) -> list[User]:
    await get_role(db, role_id)
    result = await db.execute(
        select(User)
        .join(user_roles, user_roles.c.user_id == User.id)
        .where(user_roles.c.role_id == role_id)
        .order_by(User.name, User.email)
    )
    return list(result.scalars().all())
