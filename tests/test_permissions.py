import pytest

from app.core.errors import Conflict, NotFound, ValidationError
from app.features.permissions import catalog, resolution
from app.features.permissions.resolution import PermissionResolver
from app.features.profiles import service as profiles


@pytest.fixture
async def profile(db, make_user):
    user = await make_user("U")
    p1 = await profiles.create_profile(db, user.id, "P1")
    await db.commit()
    return p1


# ----------------------------------------------------------------------------
# Catalog
# ----------------------------------------------------------------------------

class TestCatalog:
    async def test_duplicate_permission_conflicts(self, db):
        await catalog.create_permission(db, "dashboard", "read")
        with pytest.raises(Conflict):
            await catalog.create_permission(db, "dashboard", "read", name="other name")

    async def test_permission_name_defaults_to_key(self, db):
        permission = await catalog.create_permission(db, "dashboard", "read")
        assert permission.name == "dashboard:read"
        assert permission.key == "dashboard:read"

    async def test_list_permissions_and_resources(self, db):
        await catalog.create_permission(db, "reports", "read")
        await catalog.create_permission(db, "dashboard", "write")
        await catalog.create_permission(db, "dashboard", "read")

        keys = [p.key for p in await catalog.list_permissions(db)]
        assert keys == ["dashboard:read", "dashboard:write", "reports:read"]
        assert [p.key for p in await catalog.list_permissions(db, "reports")] == ["reports:read"]
        assert await catalog.list_resources(db) == ["dashboard", "reports"]

    async def test_duplicate_role_conflicts(self, db):
        await catalog.create_role(db, "Viewer")
        with pytest.raises(Conflict):
            await catalog.create_role(db, "Viewer")

    async def test_rename_role_to_taken_name(self, db):
        await catalog.create_role(db, "Viewer")
        editor = await catalog.create_role(db, "Editor")
        with pytest.raises(Conflict):
            await catalog.update_role(db, editor.id, {"name": "Viewer"})

    async def test_system_role_cannot_be_deleted(self, db):
        role = await catalog.create_role(db, "admin", is_system=True)
        with pytest.raises(Conflict):
            await catalog.delete_role(db, role.id)

    async def test_delete_role(self, db):
        role = await catalog.create_role(db, "Temp")
        await catalog.delete_role(db, role.id)
        with pytest.raises(NotFound):
            await catalog.get_role(db, role.id)

    async def test_replace_role_permissions(self, db):
        role = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")
        write = await catalog.create_permission(db, "dashboard", "write")

        await catalog.replace_role_permissions(db, role.id, [read.id, write.id])
        granted = await catalog.replace_role_permissions(db, role.id, [write.id])
        assert [p.id for p in granted] == [write.id]

    async def test_replace_role_permissions_rejects_unknown_ids(self, db):
        role = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")
        await catalog.replace_role_permissions(db, role.id, [read.id])

        with pytest.raises(ValidationError):
            await catalog.replace_role_permissions(db, role.id, [read.id, "missing"])
        assert [p.id for p in await catalog.get_role_permissions(db, role.id)] == [read.id]

    async def test_assign_and_revoke_role_permission(self, db):
        role = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")

        await catalog.assign_permission_to_role(db, role.id, read.id)
        with pytest.raises(Conflict):
            await catalog.assign_permission_to_role(db, role.id, read.id)

        await catalog.revoke_permission_from_role(db, role.id, read.id)
        with pytest.raises(NotFound):
            await catalog.revoke_permission_from_role(db, role.id, read.id)

    async def test_user_role_assignment_is_idempotent(self, db, make_user):
        user = await make_user("U")
        role = await catalog.create_role(db, "Viewer")

        await catalog.assign_role_to_user(db, user.id, role.id)
        await catalog.assign_role_to_user(db, user.id, role.id)
        assert [r.id for r in await catalog.get_user_roles(db, user.id)] == [role.id]

        await catalog.revoke_role_from_user(db, user.id, role.id)
        with pytest.raises(NotFound):
            await catalog.revoke_role_from_user(db, user.id, role.id)


    async def test_assign_several_roles_to_user(self, db, make_user):
        user = await make_user("U")
        viewer = await catalog.create_role(db, "Viewer")
        editor = await catalog.create_role(db, "Editor")
        await catalog.assign_role_to_user(db, user.id, viewer.id)

        roles = await catalog.assign_roles_to_user(db, user.id, [viewer.id, editor.id], assigned_by_id="admin")
        assert [r.name for r in roles] == ["Editor", "Viewer"]

    async def test_assign_several_roles_rejects_unknown_ids(self, db, make_user):
        user = await make_user("U")
        viewer = await catalog.create_role(db, "Viewer")
        with pytest.raises(ValidationError):
            await catalog.assign_roles_to_user(db, user.id, [viewer.id, "missing"])
        assert await catalog.get_user_roles(db, user.id) == []

    async def test_revoke_all_roles_from_user(self, db, make_user):
        user = await make_user("U")
        other = await make_user("Other")
        viewer = await catalog.create_role(db, "Viewer")
        editor = await catalog.create_role(db, "Editor")
        await catalog.assign_roles_to_user(db, user.id, [viewer.id, editor.id])
        await catalog.assign_role_to_user(db, other.id, viewer.id)

        assert await catalog.revoke_all_roles_from_user(db, user.id) == 2
        assert await catalog.get_user_roles(db, user.id) == []
        assert await catalog.revoke_all_roles_from_user(db, user.id) == 0
        assert [u.id for u in await catalog.get_users_with_role(db, viewer.id)] == [other.id]

    async def test_users_with_role(self, db, make_user):
        zoe = await make_user("Zoe")
        adam = await make_user("Adam")
        await make_user("Nobody")
        viewer = await catalog.create_role(db, "Viewer")
        await catalog.assign_role_to_user(db, zoe.id, viewer.id)
        await catalog.assign_role_to_user(db, adam.id, viewer.id)

        assert [u.name for u in await catalog.get_users_with_role(db, viewer.id)] == ["Adam", "Zoe"]
        with pytest.raises(NotFound):
            await catalog.get_users_with_role(db, "missing")


# ----------------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------------

class TestResolution:
    async def test_viewer_scenario(self, db, profile):
        viewer = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")
        await catalog.create_permission(db, "dashboard", "write")
        await catalog.assign_permission_to_role(db, viewer.id, read.id)

        await resolution.assign_role(db, profile.id, viewer.id)

        resolver = PermissionResolver(db)
        assert await resolver.has_permission(profile.id, "dashboard", "read") is True
        assert await resolver.has_permission(profile.id, "dashboard", "write") is False
        assert await resolver.has_role(profile.id, "Viewer") is True
        assert await resolver.has_role(profile.id, "Editor") is False

    async def test_union_is_deduplicated(self, db, profile):
        r1 = await catalog.create_role(db, "R1")
        r2 = await catalog.create_role(db, "R2")
        read = await catalog.create_permission(db, "dashboard", "read")
        write = await catalog.create_permission(db, "dashboard", "write")
        await catalog.replace_role_permissions(db, r1.id, [read.id])
        await catalog.replace_role_permissions(db, r2.id, [read.id, write.id])

        await resolution.replace_roles(db, profile.id, [r1.id, r2.id])
        assert await resolution.get_profile_permissions(db, profile.id) == frozenset(
            {"dashboard:read", "dashboard:write"}
        )

    async def test_role_order_does_not_matter(self, db, make_user):
        user = await make_user("U")
        first = await profiles.create_profile(db, user.id, "First")
        second = await profiles.create_profile(db, user.id, "Second")
        r1 = await catalog.create_role(db, "R1")
        r2 = await catalog.create_role(db, "R2")
        read = await catalog.create_permission(db, "dashboard", "read")
        export = await catalog.create_permission(db, "reports", "export")
        await catalog.replace_role_permissions(db, r1.id, [read.id])
        await catalog.replace_role_permissions(db, r2.id, [read.id, export.id])

        await resolution.assign_role(db, first.id, r1.id)
        await resolution.assign_role(db, first.id, r2.id)
        await resolution.assign_role(db, second.id, r2.id)
        await resolution.assign_role(db, second.id, r1.id)

        a = await resolution.get_profile_permissions(db, first.id)
        b = await resolution.get_profile_permissions(db, second.id)
        assert a == b == frozenset({"dashboard:read", "reports:export"})
        assert await resolution.get_profile_permissions(db, first.id) == a

    async def test_replace_with_empty_list_clears_everything(self, db, profile):
        role = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")
        await catalog.replace_role_permissions(db, role.id, [read.id])
        await resolution.replace_roles(db, profile.id, [role.id])
        assert await resolution.get_profile_permissions(db, profile.id) == frozenset({"dashboard:read"})

        assert await resolution.replace_roles(db, profile.id, []) == []
        assert await resolution.get_profile_permissions(db, profile.id) == frozenset()

    async def test_role_without_permissions_still_counts_as_held(self, db, profile):
        empty = await catalog.create_role(db, "Empty")
        await resolution.assign_role(db, profile.id, empty.id)

        access = await resolution.get_profile_access(db, profile.id)
        assert access.permissions == frozenset()
        assert access.has_role("Empty")

    async def test_replace_roles_rejects_unknown_role(self, db, profile):
        with pytest.raises(ValidationError):
            await resolution.replace_roles(db, profile.id, ["missing"])

    async def test_replace_roles_unknown_profile(self, db):
        with pytest.raises(NotFound):
            await resolution.replace_roles(db, "missing", [])

    async def test_assign_role_twice_conflicts(self, db, profile):
        role = await catalog.create_role(db, "Viewer")
        await resolution.assign_role(db, profile.id, role.id)
        with pytest.raises(Conflict):
            await resolution.assign_role(db, profile.id, role.id)

    async def test_assign_unknown_role(self, db, profile):
        with pytest.raises(NotFound):
            await resolution.assign_role(db, profile.id, "missing")

    async def test_revoke_role(self, db, profile):
        role = await catalog.create_role(db, "Viewer")
        await resolution.assign_role(db, profile.id, role.id)
        await resolution.revoke_role(db, profile.id, role.id)
        assert await resolution.get_profile_roles(db, profile.id) == []
        with pytest.raises(NotFound):
            await resolution.revoke_role(db, profile.id, role.id)

    async def test_user_permissions_bypass_profiles(self, db, make_user, profile):
        user = await make_user("Direct")
        viewer = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")
        await catalog.assign_permission_to_role(db, viewer.id, read.id)
        await resolution.assign_role(db, profile.id, viewer.id)

        assert await resolution.get_user_permissions(db, user.id) == frozenset()
        await catalog.assign_role_to_user(db, user.id, viewer.id)
        assert await resolution.get_user_permissions(db, user.id) == frozenset({"dashboard:read"})

        resolver = PermissionResolver(db)
        assert await resolver.user_has_permission(user.id, "dashboard", "read")
        assert await resolver.user_has_role(user.id, "Viewer")

    async def test_profiles_with_role_skips_removed_profiles(self, db, make_user):
        user = await make_user("U")
        personal = await profiles.create_profile(db, user.id, "Personal")
        work = await profiles.create_profile(db, user.id, "Work")
        viewer = await catalog.create_role(db, "Viewer")
        await resolution.assign_role(db, personal.id, viewer.id)
        await resolution.assign_role(db, work.id, viewer.id)

        holders = await resolution.get_profiles_with_role(db, viewer.id)
        assert [p.name for p in holders] == ["Personal", "Work"]

        await profiles.delete_profile(db, work.id, actor_id=user.id)
        assert [p.id for p in await resolution.get_profiles_with_role(db, viewer.id)] == [personal.id]

    async def test_assignment_history(self, db, profile):
        viewer = await catalog.create_role(db, "Viewer")
        editor = await catalog.create_role(db, "Editor")
        await resolution.assign_role(db, profile.id, viewer.id, assigned_by_id="admin")
        await resolution.assign_role(db, profile.id, editor.id, assigned_by_id="owner")

        history = await resolution.get_assignment_history(db, profile.id)
        assert {(h.role_name, h.assigned_by_id) for h in history} == {("Viewer", "admin"), ("Editor", "owner")}
        assert history[0].assigned_at >= history[1].assigned_at

    async def test_assignment_history_unknown_profile(self, db):
        with pytest.raises(NotFound):
            await resolution.get_assignment_history(db, "missing")


class TestResolverCache:
    async def test_aggregates_once_per_subject(self, db, profile, monkeypatch):
        calls = []
        original = resolution.get_profile_access

        async def counting(db_session, profile_id):
            calls.append(profile_id)
            return await original(db_session, profile_id)

        monkeypatch.setattr(resolution, "get_profile_access", counting)
        resolver = PermissionResolver(db)
        for action in ("read", "write", "delete"):
            await resolver.has_permission(profile.id, "dashboard", action)
        await resolver.has_role(profile.id, "Viewer")

        assert calls == [profile.id]

    async def test_invalidate_forces_reload(self, db, profile):
        role = await catalog.create_role(db, "Viewer")
        read = await catalog.create_permission(db, "dashboard", "read")
        await catalog.assign_permission_to_role(db, role.id, read.id)

        resolver = PermissionResolver(db)
        assert not await resolver.has_permission(profile.id, "dashboard", "read")
        await resolution.assign_role(db, profile.id, role.id)
        assert not await resolver.has_permission(profile.id, "dashboard", "read")

        resolver.invalidate(profile_id=profile.id)
        assert await resolver.has_permission(profile.id, "dashboard", "read")
