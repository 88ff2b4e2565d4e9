"""Tests for role CRUD and role ↔ permission edges."""

import pytest

from droxstock.core.exceptions import (
    NameConflictError, InvalidGuardError, GuardMismatchError, RoleProtectedError,
    RoleInUseError, PermissionNotAssignedError, CriticalPermissionProtectedError,
    PermissionNotFoundError, RoleNotFoundError, ValidationError,
)
from droxstock.models import Role, Permission
from droxstock.services.role_service import role_service
from droxstock.services.permission_service import permission_service


class TestCreateRole:
    def test_create_with_permissions(self, db, seeded):
        role = role_service.create(db, "editor", permission_names=["view dapartos", "edit dapartos"])

        assert role.id is not None
        assert role.guard_name == "api"
        assert sorted(p.name for p in role.permissions) == ["edit dapartos", "view dapartos"]

    def test_system_name_is_rejected(self, db, seeded):
        with pytest.raises(NameConflictError) as exc:
            role_service.create(db, "manager")
        assert exc.value.field == "name"

    def test_duplicate_name_for_guard(self, db, seeded):
        role_service.create(db, "editor")
        with pytest.raises(NameConflictError):
            role_service.create(db, "editor")

    def test_same_name_on_other_guard_is_allowed(self, db, seeded):
        role_service.create(db, "editor")
        role = role_service.create(db, "editor", guard_name="web")
        assert role.guard_name == "web"

    def test_unknown_guard(self, db, seeded):
        with pytest.raises(InvalidGuardError):
            role_service.create(db, "editor", guard_name="cli")

    def test_permission_on_other_guard(self, db, seeded):
        permission_service.create(db, "web only", guard_name="web")
        with pytest.raises(GuardMismatchError):
            role_service.create(db, "editor", permission_names=["web only"])

    def test_unknown_permission(self, db, seeded):
        with pytest.raises(PermissionNotFoundError):
            role_service.create(db, "editor", permission_names=["does not exist"])

    def test_blank_name(self, db, seeded):
        with pytest.raises(ValidationError):
            role_service.create(db, "   ")


class TestUpdateRole:
    def test_rename_and_sync_permissions(self, db, seeded):
        role = role_service.create(db, "editor", permission_names=["view dapartos", "edit dapartos"])

        updated = role_service.update(
            db, role.id, name="writer", permission_names=["edit dapartos", "upload csv"]
        )

        assert updated.name == "writer"
        assert sorted(p.name for p in updated.permissions) == ["edit dapartos", "upload csv"]

    @pytest.mark.parametrize("name", ["admin", "manager", "basic_user", "user"])
    def test_system_role_rename_fails(self, db, seeded, name):
        with pytest.raises(RoleProtectedError) as exc:
            role_service.update(db, seeded[name].id, name=f"{name}-renamed")
        assert exc.value.field == "name"

    def test_rename_to_system_name(self, db, seeded):
        role = role_service.create(db, "editor")
        with pytest.raises(NameConflictError):
            role_service.update(db, role.id, name="admin")

    def test_rename_collision(self, db, seeded):
        role_service.create(db, "editor")
        other = role_service.create(db, "writer")
        with pytest.raises(NameConflictError):
            role_service.update(db, other.id, name="editor")

    def test_system_role_description_can_change(self, db, seeded):
        role = role_service.update(db, seeded["manager"].id, description="Catalog team")
        assert role.description == "Catalog team"
        assert role.name == "manager"

    def test_missing_role(self, db, seeded):
        with pytest.raises(RoleNotFoundError):
            role_service.update(db, 9999, description="x")


class TestDeleteRole:
    @pytest.mark.parametrize("name", ["admin", "manager", "basic_user", "user"])
    def test_system_roles_cannot_be_deleted(self, db, seeded, name):
        with pytest.raises(RoleProtectedError):
            role_service.delete(db, seeded[name].id)

    def test_unassigned_custom_role_is_deleted(self, db, seeded):
        role = role_service.create(db, "editor", permission_names=["view dapartos"])
        role_service.delete(db, role.id)

        assert db.query(Role).filter(Role.name == "editor").first() is None
        assert db.query(Permission).filter(Permission.name == "view dapartos").first() is not None

    def test_role_in_use(self, db, seeded, make_user):
        role = role_service.create(db, "editor")
        make_user("ed@example.com", role_names=["editor"])

        with pytest.raises(RoleInUseError):
            role_service.delete(db, role.id)


class TestCloneRole:
    def test_clone_copies_permissions(self, db, seeded):
        clone = role_service.clone(db, seeded["manager"].id, "manager-copy")

        assert clone.description == "Cloned from manager"
        assert {p.name for p in clone.permissions} == {p.name for p in seeded["manager"].permissions}

    def test_clone_to_system_name(self, db, seeded):
        with pytest.raises(NameConflictError):
            role_service.clone(db, seeded["manager"].id, "admin")


class TestRolePermissionEdges:
    def _permission(self, db, name):
        return db.query(Permission).filter(Permission.name == name).one()

    def test_assign_is_idempotent(self, db, seeded):
        role = role_service.create(db, "editor")
        permission = self._permission(db, "view dapartos")

        first = role_service.assign_permission(db, role.id, permission.id)
        second = role_service.assign_permission(db, role.id, permission.id)

        assert first["already_assigned"] is False
        assert second["already_assigned"] is True
        assert [p.name for p in role_service.get(db, role.id).permissions] == ["view dapartos"]

    def test_assign_guard_mismatch(self, db, seeded):
        role = role_service.create(db, "editor")
        web_permission = permission_service.create(db, "web only", guard_name="web")
        with pytest.raises(GuardMismatchError):
            role_service.assign_permission(db, role.id, web_permission.id)

    def test_assign_multiple(self, db, seeded):
        role = role_service.create(db, "editor", permission_names=["view dapartos"])
        ids = [self._permission(db, n).id for n in ("view dapartos", "upload csv")]

        result = role_service.assign_permissions(db, role.id, ids)

        assert result["assigned"] == ["upload csv"]
        assert result["already_assigned"] == ["view dapartos"]

    def test_assign_multiple_unknown_id(self, db, seeded):
        role = role_service.create(db, "editor")
        with pytest.raises(PermissionNotFoundError):
            role_service.assign_permissions(db, role.id, [9999])

    def test_remove_not_assigned(self, db, seeded):
        role = role_service.create(db, "editor")
        permission = self._permission(db, "upload csv")
        with pytest.raises(PermissionNotAssignedError):
            role_service.remove_permission(db, role.id, permission.id)

    def test_critical_permission_stays_on_admin(self, db, seeded):
        permission = self._permission(db, "manage_users")
        with pytest.raises(CriticalPermissionProtectedError):
            role_service.remove_permission(db, seeded["admin"].id, permission.id)

    def test_non_critical_permission_leaves_admin(self, db, seeded):
        permission = self._permission(db, "view dapartos")
        role_service.remove_permission(db, seeded["admin"].id, permission.id)
        assert permission not in role_service.get(db, seeded["admin"].id).permissions

    def test_remove_all_blocked_for_system_roles(self, db, seeded):
        with pytest.raises(RoleProtectedError):
            role_service.remove_all_permissions(db, seeded["manager"].id)

    def test_remove_all_from_custom_role(self, db, seeded):
        role = role_service.create(db, "editor", permission_names=["view dapartos", "upload csv"])
        result = role_service.remove_all_permissions(db, role.id)

        assert sorted(result["removed"]) == ["upload csv", "view dapartos"]
        assert role_service.get(db, role.id).permissions == []


class TestRoleStatistics:
    def test_counts(self, db, seeded, make_user):
        role_service.create(db, "empty")
        make_user("boss@example.com", role_names=["admin"])

        stats = role_service.statistics(db)

        assert stats["total_roles"] == 5
        assert stats["roles_with_users"] == 1
        assert stats["unused_roles"] == 4
        assert stats["roles_without_permissions"] == 1
        assert stats["total_permissions"] == db.query(Permission).count()
