import pytest

from app.core.errors import Conflict, NotFound
from app.features.memberships import service as memberships
from app.features.memberships.models import MembershipRole
from app.features.organizations import service as organizations


class TestAddMember:
    async def test_add_member(self, db, make_org, make_user):
        org = await make_org("Unit")
        alice = await make_user("Alice")

        membership = await memberships.add_member(db, org.id, alice.id, role=MembershipRole.OFFICER)
        assert membership.active is True
        assert membership.end_date is None
        assert membership.role == MembershipRole.OFFICER
        assert await memberships.is_valid_membership(db, membership.id)

    async def test_duplicate_active_membership_conflicts(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        await make_member(org.id, alice.id)

        with pytest.raises(Conflict):
            await memberships.add_member(db, org.id, alice.id)
        assert await memberships.get_member_count(db, org.id) == 1

    async def test_rejoin_after_removal(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        first = await make_member(org.id, alice.id)
        await memberships.remove_member(db, first.id)

        second = await memberships.add_member(db, org.id, alice.id)
        assert second.id != first.id
        assert await memberships.get_member_count(db, org.id) == 1

    async def test_unknown_user(self, db, make_org):
        org = await make_org("Unit")
        with pytest.raises(NotFound):
            await memberships.add_member(db, org.id, "no-such-user")

    async def test_tombstoned_org_counts_as_absent(self, db, make_org, make_user):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        await organizations.soft_delete(db, org.id, actor_id=None)
        with pytest.raises(NotFound):
            await memberships.add_member(db, org.id, alice.id)

    async def test_add_by_email_is_case_insensitive(self, db, make_org, make_user):
        org = await make_org("Unit")
        alice = await make_user("Alice", email="alice@example.com")
        membership = await memberships.add_member_by_email(db, org.id, "ALICE@Example.com")
        assert membership.user_id == alice.id

    async def test_add_by_unknown_email(self, db, make_org):
        org = await make_org("Unit")
        with pytest.raises(NotFound):
            await memberships.add_member_by_email(db, org.id, "nobody@example.com")


class TestLifecycle:
    async def test_remove_stamps_end_date(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        membership = await make_member(org.id, alice.id)

        removed = await memberships.remove_member(db, membership.id)
        assert removed.active is False
        assert removed.end_date is not None
        assert not await memberships.is_valid_membership(db, membership.id)

    async def test_remove_twice_is_noop(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        membership = await make_member(org.id, alice.id)
        first = await memberships.remove_member(db, membership.id)
        ended_at = first.end_date

        again = await memberships.remove_member(db, membership.id)
        assert again.end_date == ended_at

    async def test_remove_unknown(self, db):
        with pytest.raises(NotFound):
            await memberships.remove_member(db, "missing")

    async def test_update_role_in_place(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        membership = await make_member(org.id, alice.id)

        updated = await memberships.update_role(db, membership.id, MembershipRole.ADMIN)
        assert updated.id == membership.id
        assert updated.role == MembershipRole.ADMIN


class TestQueries:
    async def test_list_members_most_recent_first(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        await make_member(org.id, alice.id)
        await make_member(org.id, bob.id)
        gone = await make_member(org.id, carol.id)
        await memberships.remove_member(db, gone.id)

        members = await memberships.list_members(db, org.id)
        assert [m.user.name for m in members] == ["Bob", "Alice"]

    async def test_list_user_memberships(self, db, make_org, make_user, make_member):
        a = await make_org("A")
        b = await make_org("B")
        alice = await make_user("Alice")
        await make_member(a.id, alice.id)
        await make_member(b.id, alice.id)

        orgs = {m.organization_id for m in await memberships.list_user_memberships(db, alice.id)}
        assert orgs == {a.id, b.id}

    async def test_search_excludes_active_members(self, db, make_org, make_user, make_member):
        org = await make_org("Unit")
        await make_user("Anna Smith", email="anna@example.com")
        member = await make_user("Andrew Member", email="andrew@example.com")
        await make_user("Zed", email="zed@example.com")
        await make_member(org.id, member.id)

        found = await memberships.search_users_for_org(db, "AN", organization_id=org.id)
        assert [u.name for u in found] == ["Anna Smith"]

    async def test_search_matches_email_and_orders_by_name(self, db, make_user):
        await make_user("Zoe", email="z.lead@example.com")
        await make_user("Adam", email="adam.lead@example.com")
        await make_user("Other", email="other@example.com")

        found = await memberships.search_users_for_org(db, "lead")
        assert [u.name for u in found] == ["Adam", "Zoe"]

    async def test_search_limit(self, db, make_user):
        for i in range(5):
            await make_user(f"Person {i}")
        assert len(await memberships.search_users_for_org(db, "person", limit=3)) == 3

    async def test_search_treats_wildcards_literally(self, db, make_org, make_user):
        org = await make_org("Unit")
        await make_user("Alice", email="alice@example.com")
        await make_user("Bob", email="bob@example.com")
        assert await memberships.search_users_for_org(db, "_", organization_id=org.id) == []
        assert await memberships.search_users_for_org(db, "%", organization_id=org.id) == []

        await make_user("Ann_Lee", email="ann@example.com")
        await make_user("Full 100%", email="full@example.com")
        assert [u.name for u in await memberships.search_users_for_org(db, "_")] == ["Ann_Lee"]
        assert [u.name for u in await memberships.search_users_for_org(db, "0%")] == ["Full 100%"]
