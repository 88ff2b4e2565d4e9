"""Tests for user role/permission assignments and user deletion rules."""

import pytest

from droxstock.core.exceptions import (
    GuardMismatchError, RoleNotAssignedError, LastAdminProtectedError,
    CriticalPermissionProtectedError, SelfDeletionForbiddenError,
    PrimaryAdminProtectedError, UserNotFoundError, PermissionNotAssignedError,
    ResourceConflictError, ValidationError, RoleNotFoundError,
)
from droxstock.core.security import verify_password
from droxstock.models import Permission, User, RegistrationStatus
from droxstock.services.role_service import role_service
from droxstock.services.user_access_service import user_access_service


def _permission(db, name):
    return db.query(Permission).filter(Permission.name == name).one()


class TestRoleAssignment:
    def test_assign_role_is_idempotent(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        role = seeded["manager"]

        first = user_access_service.assign_role(db, user.id, role.id)
        second = user_access_service.assign_role(db, user.id, role.id)

        assert first["already_assigned"] is False
        assert second["note"] == "User already had this role"
        assert user_access_service.get_user(db, user.id).role_names == ["manager"]

    def test_role_on_other_guard(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        web_role = role_service.create(db, "web editor", guard_name="web")

        with pytest.raises(GuardMismatchError) as exc:
            user_access_service.assign_role(db, user.id, web_role.id)
        assert exc.value.message == "Invalid role guard"

    def test_assign_roles_reports_existing(self, db, seeded, make_user):
        user = make_user("jane@example.com", role_names=["user"])

        result = user_access_service.assign_roles(
            db, user.id, [seeded["user"].id, seeded["basic_user"].id]
        )

        assert result["assigned_roles"] == ["basic_user"]
        assert result["already_assigned"] == ["user"]

    def test_remove_role_not_held(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        with pytest.raises(RoleNotAssignedError):
            user_access_service.remove_role(db, user.id, seeded["manager"].id)

    def test_last_admin_keeps_admin_role(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])

        with pytest.raises(LastAdminProtectedError) as exc:
            user_access_service.remove_role(db, admin.id, seeded["admin"].id)
        assert exc.value.message == "Cannot remove admin role from last admin user"

    def test_admin_role_removed_when_another_admin_exists(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        make_user("deputy@example.com", role_names=["admin"])

        user_access_service.remove_role(db, admin.id, seeded["admin"].id)

        assert user_access_service.get_user(db, admin.id).role_names == []

    def test_remove_all_roles_from_last_admin(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin", "manager"])
        with pytest.raises(LastAdminProtectedError):
            user_access_service.remove_all_roles(db, admin.id)

    def test_remove_all_roles(self, db, seeded, make_user):
        user = make_user("jane@example.com", role_names=["manager", "user"])
        result = user_access_service.remove_all_roles(db, user.id)

        assert sorted(result["removed_roles"]) == ["manager", "user"]
        assert user_access_service.get_user(db, user.id).roles == []


class TestDirectPermissions:
    def test_assign_permission_is_idempotent(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        permission = _permission(db, "upload csv")

        user_access_service.assign_permission(db, user.id, permission.id)
        again = user_access_service.assign_permission(db, user.id, permission.id)

        assert again["already_assigned"] is True
        assert [p.name for p in user_access_service.get_user(db, user.id).permissions] == ["upload csv"]

    def test_critical_permission_stays_on_admin(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"], permission_names=["manage_users"])

        with pytest.raises(CriticalPermissionProtectedError) as exc:
            user_access_service.remove_permission(db, admin.id, _permission(db, "manage_users").id)
        assert exc.value.message == "Cannot remove critical permissions from admin users"

    def test_critical_permission_leaves_non_admin(self, db, seeded, make_user):
        user = make_user("jane@example.com", permission_names=["manage_users"])
        user_access_service.remove_permission(db, user.id, _permission(db, "manage_users").id)
        assert user_access_service.get_user(db, user.id).permissions == []

    def test_remove_permission_not_held(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        with pytest.raises(PermissionNotAssignedError):
            user_access_service.remove_permission(db, user.id, _permission(db, "upload csv").id)

    def test_remove_all_from_admin_with_critical(self, db, seeded, make_user):
        admin = make_user(
            "boss@example.com", role_names=["admin"],
            permission_names=["upload csv", "access_admin_panel"],
        )
        with pytest.raises(CriticalPermissionProtectedError):
            user_access_service.remove_all_permissions(db, admin.id)

    def test_remove_all_from_admin_without_critical(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"], permission_names=["upload csv"])
        result = user_access_service.remove_all_permissions(db, admin.id)
        assert result["removed_permissions"] == ["upload csv"]

    def test_effective_permissions(self, db, seeded, make_user):
        user = make_user("jane@example.com", role_names=["basic_user"], permission_names=["upload csv"])

        result = user_access_service.get_user_permissions(db, user.id)

        assert result["direct_permissions"] == ["upload csv"]
        assert [r["name"] for r in result["roles"]] == ["basic_user"]
        assert result["effective_permissions"] == [
            "upload csv", "view csv status", "view dapartos", "view profile",
        ]


class TestDeleteUser:
    def test_self_deletion(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        with pytest.raises(SelfDeletionForbiddenError) as exc:
            user_access_service.delete_user(db, actor_id=admin.id, user_id=admin.id)
        assert exc.value.message == "Cannot delete your own account"

    def test_last_admin(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        manager = make_user("mgr@example.com", role_names=["manager"])

        with pytest.raises(LastAdminProtectedError) as exc:
            user_access_service.delete_user(db, actor_id=manager.id, user_id=admin.id)
        assert exc.value.message == "Cannot delete the last admin account"

    def test_primary_admin(self, db, seeded, make_user):
        primary = make_user("admin@example.com", role_names=["admin"])
        other = make_user("deputy@example.com", role_names=["admin"])

        with pytest.raises(PrimaryAdminProtectedError):
            user_access_service.delete_user(db, actor_id=other.id, user_id=primary.id)

    def test_second_admin_can_be_deleted(self, db, seeded, make_user):
        make_user("admin@example.com", role_names=["admin"])
        deputy = make_user("deputy@example.com", role_names=["admin"], permission_names=["upload csv"])
        actor = make_user("mgr@example.com", role_names=["manager"])

        user_access_service.delete_user(db, actor_id=actor.id, user_id=deputy.id)

        assert db.query(User).filter(User.email == "deputy@example.com").first() is None

    def test_missing_user(self, db, seeded, make_user):
        actor = make_user("boss@example.com", role_names=["admin"])
        with pytest.raises(UserNotFoundError):
            user_access_service.delete_user(db, actor_id=actor.id, user_id=9999)


class TestAccounts:
    def test_list_filters(self, db, seeded, make_user):
        make_user("anna@example.com", role_names=["manager"])
        make_user("bert@example.com", role_names=["user"])
        make_user("carla@example.com", registration_status=RegistrationStatus.PENDING)

        by_role = user_access_service.list_users(db, role="manager")
        by_status = user_access_service.list_users(db, status=RegistrationStatus.PENDING)
        by_text = user_access_service.list_users(db, search="BERT")

        assert [u.email for u in by_role["users"]] == ["anna@example.com"]
        assert [u.email for u in by_status["users"]] == ["carla@example.com"]
        assert [u.email for u in by_text["users"]] == ["bert@example.com"]

    def test_list_pagination(self, db, seeded, make_user):
        for i in range(5):
            make_user(f"user{i}@example.com")

        page = user_access_service.list_users(db, page=2, page_size=2)

        assert page["total"] == 5
        assert [u.email for u in page["users"]] == ["user2@example.com", "user3@example.com"]

    def test_list_unknown_status(self, db, seeded):
        with pytest.raises(ValidationError):
            user_access_service.list_users(db, status="archived")

    def test_update_profile_and_password(self, db, seeded, make_user):
        user = make_user("jane@example.com")

        updated = user_access_service.update_user(db, user.id, {
            "full_name": " Jane Roe ", "email": "Jane.Roe@Example.com", "password": "another-password",
        })

        assert updated.full_name == "Jane Roe"
        assert updated.email == "jane.roe@example.com"
        assert verify_password("another-password", updated.hashed_password)

    def test_update_email_taken(self, db, seeded, make_user):
        make_user("taken@example.com")
        user = make_user("jane@example.com")

        with pytest.raises(ResourceConflictError) as exc:
            user_access_service.update_user(db, user.id, {"email": "TAKEN@example.com"})
        assert exc.value.field == "email"

    def test_update_keeps_own_email(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        updated = user_access_service.update_user(db, user.id, {"email": "jane@example.com"})
        assert updated.email == "jane@example.com"

    def test_last_admin_stays_active(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        with pytest.raises(LastAdminProtectedError):
            user_access_service.update_user(db, admin.id, {"is_active": False})

    def test_deactivate(self, db, seeded, make_user):
        user = make_user("jane@example.com")
        assert user_access_service.update_user(db, user.id, {"is_active": False}).is_active is False


class TestSyncRoles:
    def test_replaces_roles(self, db, seeded, make_user):
        user = make_user("jane@example.com", role_names=["basic_user", "user"])

        result = user_access_service.sync_roles(
            db, user.id, [seeded["manager"].id, seeded["user"].id]
        )

        assert result["roles"] == ["manager", "user"]
        assert result["added_roles"] == ["manager"]
        assert result["removed_roles"] == ["basic_user"]
        assert user_access_service.get_user(db, user.id).role_names == ["manager", "user"]

    def test_empty_list_strips_roles(self, db, seeded, make_user):
        user = make_user("jane@example.com", role_names=["manager"])
        result = user_access_service.sync_roles(db, user.id, [])
        assert result["roles"] == []

    def test_last_admin_keeps_admin_role(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])

        with pytest.raises(LastAdminProtectedError):
            user_access_service.sync_roles(db, admin.id, [seeded["manager"].id])
        assert user_access_service.get_user(db, admin.id).role_names == ["admin"]

    def test_last_admin_may_gain_roles(self, db, seeded, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        result = user_access_service.sync_roles(
            db, admin.id, [seeded["admin"].id, seeded["manager"].id]
        )
        assert result["roles"] == ["admin", "manager"]

    def test_unknown_role_changes_nothing(self, db, seeded, make_user):
        user = make_user("jane@example.com", role_names=["user"])
        with pytest.raises(RoleNotFoundError):
            user_access_service.sync_roles(db, user.id, [seeded["manager"].id, 9999])
        assert user_access_service.get_user(db, user.id).role_names == ["user"]
