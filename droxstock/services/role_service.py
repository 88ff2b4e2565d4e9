"""Role service — role CRUD, cloning, statistics and role↔permission edges."""

import logging
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.exceptions import (
    RoleNotFoundError, PermissionNotFoundError, NameConflictError, InvalidGuardError,
    GuardMismatchError, RoleProtectedError, RoleInUseError, PermissionNotAssignedError,
    CriticalPermissionProtectedError, ValidationError,
)
from droxstock.core.role_guard import role_guard
from droxstock.db.session import atomic
from droxstock.models import Role, Permission, user_has_roles

logger = logging.getLogger("droxstock.rbac")


class RoleService:
    """Handles roles and the permissions attached to them."""

    # ---- Lookups ----
    @staticmethod
    def get(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise RoleNotFoundError(f"Role {role_id} not found")
        return role

    @staticmethod
    def list_roles(
        db: Session,
        search: Optional[str] = None,
        guard_name: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        query = db.query(Role)
        if search:
            query = query.filter(Role.name.ilike(f"%{search}%"))
        if guard_name:
            query = query.filter(Role.guard_name == guard_name)

        total = query.count()
        roles = query.order_by(Role.name).offset((page - 1) * page_size).limit(page_size).all()
        return {
            "roles": roles,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": (total + page_size - 1) // page_size,
        }

    @staticmethod
    def count_users(db: Session, role: Role) -> int:
        return (
            db.query(func.count())
            .select_from(user_has_roles)
            .filter(user_has_roles.c.role_id == role.id)
            .scalar()
        )

    # ---- Validation helpers ----
    @staticmethod
    def _check_guard(guard_name: str) -> None:
        if guard_name not in settings.ALLOWED_GUARDS:
            raise InvalidGuardError(
                f"Guard '{guard_name}' is not allowed. Use one of: {', '.join(settings.ALLOWED_GUARDS)}",
                field="guard_name",
            )

    @staticmethod
    def _check_name_available(db: Session, name: str, guard_name: str,
                              exclude_id: Optional[int] = None) -> None:
        query = db.query(Role).filter(Role.name == name, Role.guard_name == guard_name)
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        if query.first():
            raise NameConflictError(
                f"Role '{name}' already exists for guard '{guard_name}'", field="name"
            )

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Role name is required", field="name")
        return cleaned

    @staticmethod
    def resolve_permissions(db: Session, names: Iterable[str], guard_name: str) -> List[Permission]:
        """Load permissions by name, insisting they all live on ``guard_name``."""
        wanted = list(dict.fromkeys(n.strip() for n in names if n and n.strip()))
        if not wanted:
            return []
        found = db.query(Permission).filter(Permission.name.in_(wanted)).all()
        on_guard = {p.name: p for p in found if p.guard_name == guard_name}

        missing = [n for n in wanted if n not in {p.name for p in found}]
        if missing:
            raise PermissionNotFoundError(
                f"Permissions not found: {', '.join(missing)}", field="permissions"
            )
        mismatched = [n for n in wanted if n not in on_guard]
        if mismatched:
            raise GuardMismatchError(
                f"Permissions {', '.join(mismatched)} do not belong to guard '{guard_name}'",
                field="permissions",
            )
        return [on_guard[n] for n in wanted]

    @staticmethod
    def sync_permissions(role: Role, permissions: List[Permission]) -> Dict[str, List[str]]:
        """Replace the role's permissions with ``permissions`` as a diff."""
        target_ids = {p.id for p in permissions}
        current_ids = {p.id for p in role.permissions}

        detached = [p for p in role.permissions if p.id not in target_ids]
        for permission in detached:
            role.permissions.remove(permission)
        attached = [p for p in permissions if p.id not in current_ids]
        role.permissions.extend(attached)
        return {
            "attached": [p.name for p in attached],
            "detached": [p.name for p in detached],
        }

    # ---- Mutations ----
    @staticmethod
    def create(
        db: Session,
        name: str,
        guard_name: Optional[str] = None,
        description: Optional[str] = None,
        permission_names: Optional[List[str]] = None,
    ) -> Role:
        """Create a role and attach the named permissions.

        Raises:
            NameConflictError: Name taken for the guard or reserved for a system role.
            InvalidGuardError: Guard is not configured.
            GuardMismatchError: A permission lives on another guard.
        """
        guard = guard_name or settings.DEFAULT_GUARD
        name = RoleService._clean_name(name)
        RoleService._check_guard(guard)

        message = role_guard.validate_role_operation("create", name)
        if message:
            logger.warning("Rejected role creation: %s", message)
            raise NameConflictError(message, field="name")
        RoleService._check_name_available(db, name, guard)
        permissions = RoleService.resolve_permissions(db, permission_names or [], guard)

        with atomic(db, "create role"):
            role = Role(name=name, guard_name=guard, description=description)
            role.permissions = permissions
            db.add(role)
        db.refresh(role)
        logger.info("Created role %s (%s) with %d permissions", role.id, role.name, len(permissions))
        return role

    @staticmethod
    def update(
        db: Session,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permission_names: Optional[List[str]] = None,
    ) -> Role:
        role = RoleService.get(db, role_id)

        if name is not None and name.strip() != role.name:
            message = role_guard.validate_role_operation("rename", role.name, name.strip())
            if message:
                logger.warning("Rejected rename of role %s: %s", role.id, message)
                if not name.strip():
                    raise ValidationError(message, field="name")
                if role_guard.is_protected_role(role.name):
                    raise RoleProtectedError(message, field="name")
                raise NameConflictError(message, field="name")
            name = name.strip()
            RoleService._check_name_available(db, name, role.guard_name, exclude_id=role.id)
        else:
            name = None

        permissions = None
        if permission_names is not None:
            permissions = RoleService.resolve_permissions(db, permission_names, role.guard_name)

        with atomic(db, "update role"):
            if name is not None:
                role.name = name
            if description is not None:
                role.description = description
            if permissions is not None:
                changes = RoleService.sync_permissions(role, permissions)
                logger.info("Synced permissions of role %s: %s", role.id, changes)
        db.refresh(role)
        return role

    @staticmethod
    def delete(db: Session, role_id: int) -> None:
        """Delete a role that is neither protected nor held by any user."""
        role = RoleService.get(db, role_id)
        message = role_guard.validate_role_operation("delete", role.name)
        if message:
            logger.warning("Rejected deletion of role %s: %s", role.id, message)
            raise RoleProtectedError(message)

        users = RoleService.count_users(db, role)
        if users > 0:
            raise RoleInUseError(
                f"Cannot delete role '{role.name}' because it is assigned to {users} user(s)"
            )

        name = role.name
        with atomic(db, "delete role"):
            role.permissions = []
            db.delete(role)
        logger.info("Deleted role %s (%s)", role_id, name)

    @staticmethod
    def clone(db: Session, source_id: int, new_name: str,
              description: Optional[str] = None) -> Role:
        """Copy a role's guard and permission set under a new name."""
        source = RoleService.get(db, source_id)
        name = RoleService._clean_name(new_name)
        message = role_guard.validate_role_operation("create", name)
        if message:
            raise NameConflictError(message, field="name")
        RoleService._check_name_available(db, name, source.guard_name)

        with atomic(db, "clone role"):
            role = Role(
                name=name,
                guard_name=source.guard_name,
                description=description or f"Cloned from {source.name}",
            )
            role.permissions = list(source.permissions)
            db.add(role)
        db.refresh(role)
        logger.info("Cloned role %s into %s (%s)", source.id, role.id, role.name)
        return role

    @staticmethod
    def statistics(db: Session) -> Dict[str, Any]:
        total_roles = db.query(func.count(Role.id)).scalar()
        with_users = db.query(Role).filter(Role.users.any()).count()
        with_permissions = db.query(Role).filter(Role.permissions.any()).count()
        return {
            "total_roles": total_roles,
            "total_permissions": db.query(func.count(Permission.id)).scalar(),
            "roles_with_users": with_users,
            "roles_with_permissions": with_permissions,
            "unused_roles": total_roles - with_users,
            "roles_without_permissions": total_roles - with_permissions,
        }

    # ---- Role ↔ permission ----
    @staticmethod
    def _get_permission(db: Session, permission_id: int) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise PermissionNotFoundError(f"Permission {permission_id} not found")
        return permission

    @staticmethod
    def _check_same_guard(role: Role, permission: Permission) -> None:
        if permission.guard_name != role.guard_name:
            raise GuardMismatchError(
                f"Permission '{permission.name}' ({permission.guard_name}) cannot be "
                f"assigned to role '{role.name}' ({role.guard_name})",
                field="permission_id",
            )

    @staticmethod
    def assign_permission(db: Session, role_id: int, permission_id: int) -> Dict[str, Any]:
        role = RoleService.get(db, role_id)
        permission = RoleService._get_permission(db, permission_id)
        RoleService._check_same_guard(role, permission)

        result = {"role": role.name, "permission": permission.name, "already_assigned": False}
        if permission in role.permissions:
            result.update(already_assigned=True, note="Role already had this permission")
            return result

        with atomic(db, "assign permission to role"):
            role.permissions.append(permission)
        logger.info("Assigned permission %s to role %s", permission.name, role.name)
        return result

    @staticmethod
    def assign_permissions(db: Session, role_id: int, permission_ids: List[int]) -> Dict[str, Any]:
        if not permission_ids:
            raise ValidationError("At least one permission id is required", field="permission_ids")
        role = RoleService.get(db, role_id)
        ids = list(dict.fromkeys(permission_ids))
        permissions = db.query(Permission).filter(Permission.id.in_(ids)).all()
        missing = sorted(set(ids) - {p.id for p in permissions})
        if missing:
            raise PermissionNotFoundError(
                f"Permissions not found: {', '.join(str(i) for i in missing)}",
                field="permission_ids",
            )
        for permission in permissions:
            RoleService._check_same_guard(role, permission)

        current = {p.id for p in role.permissions}
        assigned = [p for p in permissions if p.id not in current]
        with atomic(db, "assign permissions to role"):
            role.permissions.extend(assigned)
        logger.info("Assigned %d permissions to role %s", len(assigned), role.name)
        return {
            "role": role.name,
            "assigned": [p.name for p in assigned],
            "already_assigned": [p.name for p in permissions if p.id in current],
        }

    @staticmethod
    def remove_permission(db: Session, role_id: int, permission_id: int) -> Dict[str, Any]:
        role = RoleService.get(db, role_id)
        permission = RoleService._get_permission(db, permission_id)
        if permission not in role.permissions:
            raise PermissionNotAssignedError(
                f"Role '{role.name}' does not have permission '{permission.name}'"
            )
        is_admin = role.name == role_guard.admin_role
        if role_guard.is_critical_permission(permission.name, is_admin):
            logger.warning("Refused removing critical permission %s from %s", permission.name, role.name)
            raise CriticalPermissionProtectedError(
                f"Cannot remove critical permission '{permission.name}' from admin role"
            )

        with atomic(db, "remove permission from role"):
            role.permissions.remove(permission)
        logger.info("Removed permission %s from role %s", permission.name, role.name)
        return {"role": role.name, "permission": permission.name}

    @staticmethod
    def remove_all_permissions(db: Session, role_id: int) -> Dict[str, Any]:
        role = RoleService.get(db, role_id)
        if role_guard.is_system_role(role.name):
            raise RoleProtectedError(
                f"Cannot remove all permissions from system role '{role.name}'"
            )
        removed = [p.name for p in role.permissions]
        with atomic(db, "remove all permissions from role"):
            role.permissions = []
        logger.info("Removed %d permissions from role %s", len(removed), role.name)
        return {"role": role.name, "removed": removed}


role_service = RoleService()
