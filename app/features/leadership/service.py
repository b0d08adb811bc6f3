"""
Leadership Succession Service.

Per organization the state is either Vacant (no active record) or Led
(exactly one active record). assign_leader moves Vacant -> Led or Led -> Led
with an automatic handover; end_leadership moves Led -> Vacant.

Every succession is treated the same way: any new assignment retires
whatever record is active, whatever its type.
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotFound, ValidationError
from app.features.leadership.models import LeadershipRecord, LeadershipType
from app.features.leadership.schemas import (
    ActiveLeader,
    LeadershipHistoryEntry,
    LeadershipRecordResponse,
    LeadershipSummary,
)
from app.features.memberships.models import Membership
from app.features.organizations import service as organizations
from app.features.users.models import User
from app.utils import get_logger, utcnow


log = get_logger(__name__)


async def _validate_membership(db: AsyncSession, organization_id: str, membership_id: str) -> Membership:
    membership = await db.get(Membership, membership_id)
    if membership is None:
        raise ValidationError("Membership not found")
    if membership.organization_id != organization_id:
        raise ValidationError("Membership does not belong to the target organization")
    if not membership.active:
        raise ValidationError("Membership is no longer active")
    return membership


async def _current_record(db: AsyncSession, organization_id: str, lock: bool = False) -> LeadershipRecord | None:
    stmt = select(LeadershipRecord).where(
        LeadershipRecord.organization_id == organization_id,
        LeadershipRecord.active.is_(True),
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalars().first()


async def _retire(db: AsyncSession, record: LeadershipRecord) -> None:
    record.active = False
    record.end_date = utcnow()
    await db.flush()


async def _insert_record(
    db: AsyncSession,
    membership: Membership,
    leadership_type: LeadershipType,
    reason: str | None,
    replaced_record_id: str | None,
    assigned_by_id: str | None,
) -> LeadershipRecord:
    record = LeadershipRecord(
        organization_id=membership.organization_id,
        membership_id=membership.id,
        leadership_type=leadership_type,
        start_date=utcnow(),
        active=True,
        reason=reason,
        replaced_record_id=replaced_record_id,
        assigned_by_id=assigned_by_id,
    )
    db.add(record)
    await db.flush()
    return record


async def assign_leader(
    db: AsyncSession,
    organization_id: str,
    membership_id: str,
    leadership_type: LeadershipType,
    reason: str | None = None,
    assigned_by_id: str | None = None,
) -> LeadershipRecord:
    """
    Appoint a leader, retiring the current one in the same transaction.

    Raises:
        NotFound: organization absent or tombstoned
        ValidationError: membership missing, inactive, or from another organization
        Conflict: a concurrent succession for the same organization won the race
    """
    if not await organizations.exists(db, organization_id):
        raise NotFound("Organization not found")
    membership = await _validate_membership(db, organization_id, membership_id)

    try:
        outgoing = await _current_record(db, organization_id, lock=True)
        replaced_record_id = None
        if outgoing is not None:
            await _retire(db, outgoing)
            replaced_record_id = outgoing.id
        record = await _insert_record(
            db, membership, leadership_type, reason, replaced_record_id, assigned_by_id
        )
    except IntegrityError:
        await db.rollback()
        log.warning("Concurrent succession rejected for organization %s", organization_id)
        raise Conflict("Another leadership change for this organization is in progress")

    await db.refresh(record)
    log.info(
        "Leader assigned: org=%s record=%s type=%s replaced=%s",
        organization_id, record.id, leadership_type.value, replaced_record_id,
    )
    return record


async def end_leadership(db: AsyncSession, record_id: str) -> LeadershipRecord:
    """End a tenure without a successor. Ending an already ended record is a no-op."""
    record = await get_record(db, record_id)
    if not record.active:
        return record
    await _retire(db, record)
    log.info("Leadership ended: org=%s record=%s", record.organization_id, record_id)
    return record


async def get_record(db: AsyncSession, record_id: str) -> LeadershipRecord:
    record = await db.get(LeadershipRecord, record_id)
    if record is None:
        raise NotFound("Leadership record not found")
    return record


async def is_valid_leadership(db: AsyncSession, record_id: str) -> bool:
    record = await db.get(LeadershipRecord, record_id)
    return record is not None and record.active


def _with_leader():
    """Records joined to the user behind their membership."""
    return (
        select(LeadershipRecord, User)
        .join(Membership, Membership.id == LeadershipRecord.membership_id)
        .join(User, User.id == Membership.user_id)
    )


async def get_active_leader(db: AsyncSession, organization_id: str) -> ActiveLeader | None:
    result = await db.execute(
        _with_leader().where(
            LeadershipRecord.organization_id == organization_id,
            LeadershipRecord.active.is_(True),
        )
    )
    row = result.first()
    if row is None:
        return None
    record, user = row
    return ActiveLeader(
        record_id=record.id,
        user_id=user.id,
        name=user.name,
        email=user.email,
        leadership_type=record.leadership_type,
        start_date=record.start_date,
    )


async def get_active_by_type(
    db: AsyncSession, organization_id: str, leadership_type: LeadershipType
) -> list[LeadershipRecord]:
    result = await db.execute(
        select(LeadershipRecord).where(
            LeadershipRecord.organization_id == organization_id,
            LeadershipRecord.leadership_type == leadership_type,
            LeadershipRecord.active.is_(True),
        )
    )
    return list(result.scalars().all())


async def get_history(db: AsyncSession, organization_id: str) -> list[LeadershipHistoryEntry]:
    """All tenures of an organization, newest first, each with the record it replaced."""
    result = await db.execute(
        _with_leader()
        .where(LeadershipRecord.organization_id == organization_id)
        .order_by(LeadershipRecord.start_date.desc(), LeadershipRecord.created_at.desc())
    )
    rows = result.all()
    by_id = {record.id: (record, user) for record, user in rows}

    history = []
    for record, user in rows:
        entry = LeadershipHistoryEntry(
            **LeadershipRecordResponse.model_validate(record).model_dump(),
            name=user.name,
            email=user.email,
        )
        if record.replaced_record_id in by_id:
            replaced, replaced_user = by_id[record.replaced_record_id]
            entry.replaced_record = LeadershipSummary(
                id=replaced.id,
                name=replaced_user.name,
                leadership_type=replaced.leadership_type,
                start_date=replaced.start_date,
                end_date=replaced.end_date,
            )
        history.append(entry)
    return history
