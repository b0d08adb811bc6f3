"""
Seed script to populate the default permission catalog and system roles.

Run this script after database initialization to create:
- Default permissions for every governed resource
- System roles (admin, viewer, org_manager)
- Initial role-permission grants

Existing permissions and roles are left untouched, so the script can be
re-run safely.

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions import catalog
from app.features.permissions.models import Permission
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Organizations
    ("organizations", "create", "Create organizations"),
    ("organizations", "read", "View organizations and the hierarchy"),
    ("organizations", "update", "Update and re-parent organizations"),
    ("organizations", "delete", "Soft-delete organizations"),

    # Memberships
    ("memberships", "create", "Add members to organizations"),
    ("memberships", "read", "View organization members"),
    ("memberships", "update", "Change member roles"),
    ("memberships", "delete", "Remove members"),

    # Leadership
    ("leadership", "assign", "Appoint and end leaders"),
    ("leadership", "read", "View leaders and leadership history"),

    # Profiles
    ("profiles", "read", "View profiles of other users"),

    # Catalog management
    ("roles", "manage", "Manage roles and role assignments"),
    ("permissions", "manage", "Manage the permission catalog"),
]


DEFAULT_ROLES = {
    "admin": {
        "description": "Administrator with all permissions",
        "permissions": "ALL",  # Special case - gets all permissions
    },
    "viewer": {
        "description": "Read-only access to the governance data",
        "permissions": [
            "organizations:read",
            "memberships:read",
            "leadership:read",
        ],
    },
    "org_manager": {
        "description": "Maintains organizations, their members and leaders",
        "permissions": [
            "organizations:create", "organizations:read", "organizations:update",
            "memberships:create", "memberships:read", "memberships:update", "memberships:delete",
            "leadership:assign", "leadership:read",
        ],
    },
}


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping resource:action keys to Permission objects
    """
    log.info("Creating default permissions...")
    result = await db.execute(select(Permission))
    permissions_map = {p.key: p for p in result.scalars().all()}

    for resource, action, description in DEFAULT_PERMISSIONS:
        key = f"{resource}:{action}"
        if key in permissions_map:
            log.debug("Permission '%s' already exists, skipping", key)
            continue
        permissions_map[key] = await catalog.create_permission(db, resource, action, description=description)

    log.info("Catalog holds %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]) -> None:
    """Create the system roles and grant their permissions."""
    log.info("Creating default roles...")

    for role_name, role_config in DEFAULT_ROLES.items():
        if await catalog.get_role_by_name(db, role_name) is not None:
            log.debug("Role '%s' already exists, skipping", role_name)
            continue

        role = await catalog.create_role(db, role_name, role_config["description"], is_system=True)

        if role_config["permissions"] == "ALL":
            permission_ids = [p.id for p in permissions_map.values()]
        else:
            permission_ids = []
            for key in role_config["permissions"]:
                if key in permissions_map:
                    permission_ids.append(permissions_map[key].id)
                else:
                    log.warning("Permission '%s' not found for role '%s'", key, role_name)

        await catalog.replace_role_permissions(db, role.id, permission_ids)
        log.info("Created role '%s' with %d permissions", role_name, len(permission_ids))


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            permissions_map = await seed_permissions(db)
            await seed_roles(db, permissions_map)
            await db.commit()
        except Exception:
            log.error("Error seeding permissions", exc_info=True)
            await db.rollback()
            raise

    log.info("Permission seeding completed successfully!")
    for role_name, role_config in DEFAULT_ROLES.items():
        log.info("  - %s: %s", role_name, role_config["description"])


if __name__ == "__main__":
    asyncio.run(main())
