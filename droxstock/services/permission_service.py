"""Permission service — permission CRUD, cloning and usage statistics."""

import logging
from typing import Optional, Dict, Any

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.exceptions import (
    PermissionNotFoundError, NameConflictError, InvalidGuardError,
    SystemPermissionProtectedError, PermissionInUseError, ValidationError,
)
from droxstock.core.role_guard import role_guard
from droxstock.db.session import atomic
from droxstock.models import Permission, role_has_permissions

logger = logging.getLogger("droxstock.rbac")


class PermissionService:
    """Handles permission records."""

    @staticmethod
    def get(db: Session, permission_id: int) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise PermissionNotFoundError(f"Permission {permission_id} not found")
        return permission

    @staticmethod
    def list_permissions(
        db: Session,
        search: Optional[str] = None,
        guard_name: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        query = db.query(Permission)
        if search:
            query = query.filter(Permission.name.ilike(f"%{search}%"))
        if guard_name:
            query = query.filter(Permission.guard_name == guard_name)

        total = query.count()
        permissions = (
            query.order_by(Permission.name)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "permissions": permissions,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": (total + page_size - 1) // page_size,
        }

    @staticmethod
    def role_count(db: Session, permission: Permission) -> int:
        return (
            db.query(func.count())
            .select_from(role_has_permissions)
            .filter(role_has_permissions.c.permission_id == permission.id)
            .scalar()
        )

    @staticmethod
    def _check_name_available(db: Session, name: str, guard_name: str,
                              exclude_id: Optional[int] = None) -> None:
        query = db.query(Permission).filter(
            Permission.name == name, Permission.guard_name == guard_name
        )
        if exclude_id is not None:
            query = query.filter(Permission.id != exclude_id)
        if query.first():
            raise NameConflictError(
                f"Permission '{name}' already exists for guard '{guard_name}'", field="name"
            )

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Permission name is required", field="name")
        return cleaned

    @staticmethod
    def create(db: Session, name: str, guard_name: Optional[str] = None,
               description: Optional[str] = None) -> Permission:
        guard = guard_name or settings.DEFAULT_GUARD
        if guard not in settings.ALLOWED_GUARDS:
            raise InvalidGuardError(f"Guard '{guard}' is not allowed", field="guard_name")
        name = PermissionService._clean_name(name)
        PermissionService._check_name_available(db, name, guard)

        with atomic(db, "create permission"):
            permission = Permission(name=name, guard_name=guard, description=description)
            db.add(permission)
        db.refresh(permission)
        logger.info("Created permission %s (%s)", permission.id, permission.name)
        return permission

    @staticmethod
    def update(db: Session, permission_id: int, name: Optional[str] = None,
               description: Optional[str] = None) -> Permission:
        permission = PermissionService.get(db, permission_id)

        if name is not None and name.strip() != permission.name:
            if role_guard.is_system_permission(permission.name):
                raise SystemPermissionProtectedError(
                    f"Cannot rename system permission '{permission.name}'", field="name"
                )
            name = PermissionService._clean_name(name)
            PermissionService._check_name_available(
                db, name, permission.guard_name, exclude_id=permission.id
            )
        else:
            name = None

        with atomic(db, "update permission"):
            if name is not None:
                permission.name = name
            if description is not None:
                permission.description = description
        db.refresh(permission)
        return permission

    @staticmethod
    def clone(db: Session, source_id: int, new_name: str,
              description: Optional[str] = None) -> Permission:
        """Copy a permission's guard and description under a new name."""
        source = PermissionService.get(db, source_id)
        name = PermissionService._clean_name(new_name)
        PermissionService._check_name_available(db, name, source.guard_name)

        with atomic(db, "clone permission"):
            permission = Permission(
                name=name,
                guard_name=source.guard_name,
                description=description or f"Cloned from {source.name}",
            )
            db.add(permission)
        db.refresh(permission)
        logger.info("Cloned permission %s into %s (%s)", source.id, permission.id, permission.name)
        return permission

    @staticmethod
    def delete(db: Session, permission_id: int) -> None:
        permission = PermissionService.get(db, permission_id)
        if role_guard.is_system_permission(permission.name):
            logger.warning("Refused deleting system permission %s", permission.name)
            raise SystemPermissionProtectedError(
                f"Cannot delete system permission '{permission.name}'"
            )
        roles = PermissionService.role_count(db, permission)
        if roles > 0:
            raise PermissionInUseError(
                f"Cannot delete permission '{permission.name}' because it is assigned to {roles} role(s)"
            )

        name = permission.name
        with atomic(db, "delete permission"):
            db.delete(permission)
        logger.info("Deleted permission %s (%s)", permission_id, name)

    @staticmethod
    def statistics(db: Session) -> Dict[str, Any]:
        names = [name for (name,) in db.query(Permission.name).all()]
        system_count = sum(1 for name in names if role_guard.is_system_permission(name))

        by_guard = dict(
            db.query(Permission.guard_name, func.count(Permission.id))
            .group_by(Permission.guard_name)
            .all()
        )

        roles_count = func.count(role_has_permissions.c.role_id).label("roles_count")
        most_used = (
            db.query(Permission.id, Permission.name, roles_count)
            .join(role_has_permissions, role_has_permissions.c.permission_id == Permission.id)
            .group_by(Permission.id, Permission.name)
            .order_by(desc("roles_count"), Permission.name)
            .limit(5)
            .all()
        )

        return {
            "total": len(names),
            "system_count": system_count,
            "custom_count": len(names) - system_count,
            "by_guard": by_guard,
            "most_used": [
                {"id": row.id, "name": row.name, "roles_count": row.roles_count}
                for row in most_used
            ],
            "unused_count": db.query(Permission).filter(~Permission.roles.any()).count(),
        }


permission_service = PermissionService()
