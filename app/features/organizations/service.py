"""
Organization Store: CRUD, soft delete and hierarchy traversal.

The hierarchy is kept as a flat table of parent pointers. Trees are built in
memory with two linear passes; there are no per-node recursive queries.
"""
from typing import Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.errors import HierarchyCycleError, NotFound, ValidationError
from app.features.memberships.models import Membership
from app.features.organizations.models import Organization, OrganizationKind
from app.features.organizations.schemas import (
    OrganizationCreate,
    OrganizationDetail,
    OrganizationTreeNode,
    OrganizationUpdate,
)
from app.utils import get_logger, utcnow


log = get_logger(__name__)


def _live():
    return Organization.deleted_at.is_(None)


# ============================================================================
# Reads
# ============================================================================

async def get_by_id(db: AsyncSession, organization_id: str) -> Organization:
    """Live organization or NotFound."""
    organization = await db.get(Organization, organization_id)
    if organization is None or organization.is_deleted:
        raise NotFound("Organization not found")
    return organization


async def exists(db: AsyncSession, organization_id: str) -> bool:
    result = await db.execute(
        select(func.count()).select_from(Organization).where(
            Organization.id == organization_id, _live()
        )
    )
    return result.scalar_one() > 0


async def get_all(db: AsyncSession, kind: OrganizationKind | None = None) -> list[Organization]:
    stmt = select(Organization).where(_live())
    if kind is not None:
        stmt = stmt.where(Organization.kind == kind)
    result = await db.execute(stmt.order_by(Organization.name))
    return list(result.scalars().all())


async def get_children(db: AsyncSession, parent_id: str) -> list[Organization]:
    result = await db.execute(
        select(Organization)
        .where(Organization.parent_id == parent_id, _live())
        .order_by(Organization.name)
    )
    return list(result.scalars().all())


async def _active_member_counts(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(Membership.organization_id, func.count())
        .where(Membership.active.is_(True))
        .group_by(Membership.organization_id)
    )
    return {org_id: count for org_id, count in result.all()}


def build_forest(
    organizations: list[Organization],
    member_counts: dict[str, int] | None = None,
) -> list[OrganizationTreeNode]:
    """
    Assemble a forest from a flat list of live organizations.

    Pass 1 builds the id -> node map, pass 2 links each node to its parent.
    A node whose parent is not in the list (tombstoned or missing) becomes a
    root. Nodes left unreachable from every root can only sit on a cycle.
    """
    member_counts = member_counts or {}
    nodes: dict[str, OrganizationTreeNode] = {}
    for org in organizations:
        nodes[org.id] = OrganizationTreeNode(
            id=org.id,
            name=org.name,
            abbreviation=org.abbreviation,
            status=org.status,
            kind=org.kind,
            echelon=org.echelon,
            has_budget=org.has_budget,
            parent_id=org.parent_id,
            member_count=member_counts.get(org.id, 0),
        )

    roots: list[OrganizationTreeNode] = []
    for org in organizations:
        node = nodes[org.id]
        parent = nodes.get(org.parent_id) if org.parent_id else None
        if parent is None:
            if org.parent_id:
                log.debug("Organization %s has a tombstoned or missing parent %s; rendering as root",
                          org.id, org.parent_id)
            roots.append(node)
        else:
            parent.children.append(node)

    reached = 0
    stack = list(roots)
    while stack:
        node = stack.pop()
        reached += 1
        stack.extend(node.children)
    if reached != len(nodes):
        log.error("Organization hierarchy contains a cycle (%d of %d nodes reachable)", reached, len(nodes))
        raise HierarchyCycleError("Organization hierarchy contains a cycle")

    return roots


async def get_tree(db: AsyncSession) -> list[OrganizationTreeNode]:
    """All live organizations as a forest, each node with its active member count."""
    organizations = await get_all(db)
    counts = await _active_member_counts(db)
    return build_forest(organizations, counts)


async def get_ancestor_path(db: AsyncSession, organization_id: str) -> list[Organization]:
    """
    Organizations from the root down to organization_id (inclusive).

    Returns [] when the organization is absent or tombstoned. The walk stops
    at a tombstoned or missing parent, matching how get_tree renders orphans.
    """
    current = await db.get(Organization, organization_id)
    if current is None or current.is_deleted:
        return []

    path: list[Organization] = []
    seen: set[str] = set()
    while current is not None:
        if current.id in seen or len(path) >= config.MAX_HIERARCHY_DEPTH:
            log.error("Cycle detected walking ancestors of %s at %s", organization_id, current.id)
            raise HierarchyCycleError(f"Cycle detected above organization {organization_id}")
        seen.add(current.id)
        path.insert(0, current)
        if not current.parent_id:
            break
        parent = await db.get(Organization, current.parent_id)
        current = parent if parent is not None and not parent.is_deleted else None
    return path


async def _descendant_ids(db: AsyncSession, organization_id: str) -> set[str]:
    result = await db.execute(select(Organization.id, Organization.parent_id).where(_live()))
    children: dict[str, list[str]] = {}
    for org_id, parent_id in result.all():
        if parent_id:
            children.setdefault(parent_id, []).append(org_id)

    found: set[str] = set()
    stack = [organization_id]
    while stack:
        for child_id in children.get(stack.pop(), []):
            if child_id not in found:
                found.add(child_id)
                stack.append(child_id)
    return found


async def get_parent_candidates(db: AsyncSession, exclude_id: str | None = None) -> list[Organization]:
    """Organizations selectable as a parent, excluding exclude_id and its subtree."""
    result = await db.execute(
        select(Organization).where(_live()).order_by(Organization.parent_id, Organization.name)
    )
    organizations = list(result.scalars().all())
    if exclude_id is None:
        return organizations
    excluded = await _descendant_ids(db, exclude_id) | {exclude_id}
    return [org for org in organizations if org.id not in excluded]


async def get_detail(db: AsyncSession, organization_id: str) -> OrganizationDetail:
    """Organization with its active member count and current leader."""
    from app.features.leadership.service import get_active_leader
    from app.features.memberships.service import get_member_count

    organization = await get_by_id(db, organization_id)
    detail = OrganizationDetail.model_validate(organization)
    detail.member_count = await get_member_count(db, organization_id)
    detail.active_leader = await get_active_leader(db, organization_id)
    return detail


# ============================================================================
# Writes
# ============================================================================

async def _validate_parent(db: AsyncSession, parent_id: str, organization_id: str | None = None) -> None:
    if organization_id is not None:
        if parent_id == organization_id:
            raise ValidationError("An organization cannot be its own parent")
        if parent_id in await _descendant_ids(db, organization_id):
            raise ValidationError("An organization cannot be moved under one of its descendants")
    if not await exists(db, parent_id):
        raise ValidationError("Parent organization does not exist")


async def create(db: AsyncSession, data: OrganizationCreate, actor_id: str | None) -> Organization:
    """Create an organization; status defaults to ACTIVE and kind to STRUCTURAL."""
    if not data.name or not data.name.strip():
        raise ValidationError("Organization name is required")
    if data.parent_id:
        await _validate_parent(db, data.parent_id)

    organization = Organization(
        **data.model_dump(),
        created_by_id=actor_id,
    )
    organization.name = organization.name.strip()
    db.add(organization)
    await db.flush()
    await db.refresh(organization)

    log.info("Organization created: %s (%s) parent=%s", organization.id, organization.name, organization.parent_id)
    return organization


async def update(
    db: AsyncSession,
    organization_id: str,
    data: OrganizationUpdate | dict[str, Any],
    actor_id: str | None,
) -> Organization:
    """Merge the provided fields into a live organization."""
    organization = await get_by_id(db, organization_id)
    changes = data.model_dump(exclude_unset=True) if isinstance(data, OrganizationUpdate) else dict(data)

    for key in ("status", "kind", "has_budget"):
        if key in changes and changes[key] is None:
            raise ValidationError(f"Organization {key} cannot be null")
    if "name" in changes:
        if not changes["name"] or not changes["name"].strip():
            raise ValidationError("Organization name is required")
        changes["name"] = changes["name"].strip()
    if changes.get("parent_id"):
        await _validate_parent(db, changes["parent_id"], organization_id)

    for key, value in changes.items():
        setattr(organization, key, value)
    organization.updated_by_id = actor_id
    organization.updated_at = utcnow()

    await db.flush()
    await db.refresh(organization)
    log.info("Organization updated: %s fields=%s", organization_id, sorted(changes))
    return organization


async def soft_delete(db: AsyncSession, organization_id: str, actor_id: str | None) -> None:
    """Tombstone an organization. Children keep their parent link."""
    organization = await get_by_id(db, organization_id)
    now = utcnow()
    organization.deleted_at = now
    organization.deleted_by_id = actor_id
    organization.updated_by_id = actor_id
    organization.updated_at = now
    await db.flush()
    log.info("Organization tombstoned: %s by %s", organization_id, actor_id)
