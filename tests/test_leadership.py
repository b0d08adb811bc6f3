import pytest
from sqlalchemy import func, select

from app.core.errors import NotFound, ValidationError
from app.features.leadership import service as leadership
from app.features.leadership.models import LeadershipRecord, LeadershipType
from app.features.memberships import service as memberships
from app.features.memberships.models import MembershipRole
from app.features.organizations import service as organizations


async def _active_count(db, organization_id):
    result = await db.execute(
        select(func.count()).select_from(LeadershipRecord).where(
            LeadershipRecord.organization_id == organization_id,
            LeadershipRecord.active.is_(True),
        )
    )
    return result.scalar_one()


@pytest.fixture
async def unit(make_org, make_user, make_member):
    org = await make_org("Directorate")
    alice = await make_user("Alice", email="alice@example.com")
    bob = await make_user("Bob", email="bob@example.com")
    return {
        "org": org,
        "alice": alice,
        "bob": bob,
        "alice_membership": await make_member(org.id, alice.id),
        "bob_membership": await make_member(org.id, bob.id),
    }


class TestSuccession:
    async def test_vacant_to_led(self, db, unit):
        org = unit["org"]
        assert await leadership.get_active_leader(db, org.id) is None

        record = await leadership.assign_leader(
            db, org.id, unit["alice_membership"].id, LeadershipType.DEFINITIVE, assigned_by_id="admin"
        )
        assert record.active is True
        assert record.replaced_record_id is None
        assert record.assigned_by_id == "admin"

        leader = await leadership.get_active_leader(db, org.id)
        assert leader.user_id == unit["alice"].id
        assert leader.name == "Alice"
        assert leader.leadership_type == LeadershipType.DEFINITIVE

    async def test_handover_retires_previous_leader(self, db, unit):
        org = unit["org"]
        alice_record = await leadership.assign_leader(
            db, org.id, unit["alice_membership"].id, LeadershipType.DEFINITIVE
        )
        bob_record = await leadership.assign_leader(
            db, org.id, unit["bob_membership"].id, LeadershipType.ACTING, reason="Alice on leave"
        )

        assert bob_record.replaced_record_id == alice_record.id
        retired = await leadership.get_record(db, alice_record.id)
        assert retired.active is False
        assert retired.end_date is not None
        assert await _active_count(db, org.id) == 1

        leader = await leadership.get_active_leader(db, org.id)
        assert leader.user_id == unit["bob"].id
        assert leader.leadership_type == LeadershipType.ACTING

    async def test_history_newest_first_with_replaced_record(self, db, unit):
        org = unit["org"]
        alice_record = await leadership.assign_leader(
            db, org.id, unit["alice_membership"].id, LeadershipType.DEFINITIVE
        )
        await leadership.assign_leader(db, org.id, unit["bob_membership"].id, LeadershipType.ACTING)
        await db.commit()

        history = await leadership.get_history(db, org.id)
        assert [entry.name for entry in history] == ["Bob", "Alice"]
        assert history[0].active is True
        assert history[1].active is False
        assert history[0].replaced_record.id == alice_record.id
        assert history[0].replaced_record.name == "Alice"
        assert history[1].replaced_record is None

    async def test_any_type_replaces_any_type(self, db, unit):
        org = unit["org"]
        await leadership.assign_leader(db, org.id, unit["alice_membership"].id, LeadershipType.ACTING_DAILY)
        await leadership.assign_leader(db, org.id, unit["bob_membership"].id, LeadershipType.ACTING_DAILY)
        await leadership.assign_leader(db, org.id, unit["alice_membership"].id, LeadershipType.DEFINITIVE)
        assert await _active_count(db, org.id) == 1

    async def test_active_by_type(self, db, unit):
        org = unit["org"]
        await leadership.assign_leader(db, org.id, unit["alice_membership"].id, LeadershipType.ACTING)

        assert len(await leadership.get_active_by_type(db, org.id, LeadershipType.ACTING)) == 1
        assert await leadership.get_active_by_type(db, org.id, LeadershipType.DEFINITIVE) == []

    async def test_ministry_directorate_scenario(self, db, make_org, make_user, make_member):
        ministry = await make_org("Ministry")
        directorate = await make_org("Directorate", parent_id=ministry.id)
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        m1 = await make_member(directorate.id, alice.id, role=MembershipRole.OFFICER)

        first = await leadership.assign_leader(db, directorate.id, m1.id, LeadershipType.DEFINITIVE)
        leader = await leadership.get_active_leader(db, directorate.id)
        assert (leader.name, leader.leadership_type) == ("Alice", LeadershipType.DEFINITIVE)
        assert first.replaced_record_id is None

        m2 = await make_member(directorate.id, bob.id, role=MembershipRole.OFFICER)
        second = await leadership.assign_leader(db, directorate.id, m2.id, LeadershipType.ACTING)
        leader = await leadership.get_active_leader(db, directorate.id)
        assert (leader.name, leader.leadership_type) == ("Bob", LeadershipType.ACTING)
        assert second.replaced_record_id == first.id
        assert first.active is False
        assert first.end_date is not None
        assert await leadership.get_active_leader(db, ministry.id) is None


class TestValidation:
    async def test_membership_from_other_org(self, db, unit, make_org, make_member):
        other = await make_org("Other")
        outsider = await make_member(other.id, unit["alice"].id)
        with pytest.raises(ValidationError):
            await leadership.assign_leader(db, unit["org"].id, outsider.id, LeadershipType.DEFINITIVE)

    async def test_unknown_membership(self, db, unit):
        with pytest.raises(ValidationError):
            await leadership.assign_leader(db, unit["org"].id, "missing", LeadershipType.DEFINITIVE)

    async def test_inactive_membership(self, db, unit):
        await memberships.remove_member(db, unit["alice_membership"].id)
        with pytest.raises(ValidationError):
            await leadership.assign_leader(
                db, unit["org"].id, unit["alice_membership"].id, LeadershipType.DEFINITIVE
            )

    async def test_tombstoned_organization(self, db, unit):
        await organizations.soft_delete(db, unit["org"].id, actor_id=None)
        with pytest.raises(NotFound):
            await leadership.assign_leader(
                db, unit["org"].id, unit["alice_membership"].id, LeadershipType.DEFINITIVE
            )

    async def test_failed_assignment_keeps_current_leader(self, db, unit):
        org = unit["org"]
        await leadership.assign_leader(db, org.id, unit["alice_membership"].id, LeadershipType.DEFINITIVE)
        with pytest.raises(ValidationError):
            await leadership.assign_leader(db, org.id, "missing", LeadershipType.ACTING)
        leader = await leadership.get_active_leader(db, org.id)
        assert leader.user_id == unit["alice"].id


class TestEndLeadership:
    async def test_end_leaves_org_vacant(self, db, unit):
        org = unit["org"]
        record = await leadership.assign_leader(
            db, org.id, unit["alice_membership"].id, LeadershipType.DEFINITIVE
        )
        ended = await leadership.end_leadership(db, record.id)
        assert ended.active is False
        assert await leadership.get_active_leader(db, org.id) is None
        assert not await leadership.is_valid_leadership(db, record.id)

    async def test_end_twice_is_noop(self, db, unit):
        record = await leadership.assign_leader(
            db, unit["org"].id, unit["alice_membership"].id, LeadershipType.DEFINITIVE
        )
        first = await leadership.end_leadership(db, record.id)
        ended_at = first.end_date
        assert (await leadership.end_leadership(db, record.id)).end_date == ended_at

    async def test_end_unknown(self, db):
        with pytest.raises(NotFound):
            await leadership.end_leadership(db, "missing")
