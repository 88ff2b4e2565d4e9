"""User access service — account management, role and direct-permission assignments."""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.exceptions import (
    UserNotFoundError, RoleNotFoundError, PermissionNotFoundError, GuardMismatchError,
    RoleNotAssignedError, PermissionNotAssignedError, LastAdminProtectedError,
    CriticalPermissionProtectedError, SelfDeletionForbiddenError,
    PrimaryAdminProtectedError, ValidationError, ResourceConflictError,
)
from droxstock.core.role_guard import role_guard
from droxstock.core.security import hash_password
from droxstock.db.session import atomic
from droxstock.models import User, Role, Permission, RegistrationStatus, user_has_roles

logger = logging.getLogger("droxstock.rbac")


class UserAccessService:
    """Grants and revokes what a user may do.

    Users authenticate on ``settings.DEFAULT_GUARD``; roles and permissions
    on any other guard cannot be attached to them.
    """

    # ---- Lookups ----
    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def _get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise RoleNotFoundError(f"Role {role_id} not found")
        if role.guard_name != settings.DEFAULT_GUARD:
            raise GuardMismatchError("Invalid role guard", field="role_id")
        return role

    @staticmethod
    def _get_permission(db: Session, permission_id: int) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise PermissionNotFoundError(f"Permission {permission_id} not found")
        if permission.guard_name != settings.DEFAULT_GUARD:
            raise GuardMismatchError("Invalid permission guard", field="permission_id")
        return permission

    @staticmethod
    def count_role_holders(db: Session, role_name: str) -> int:
        return (
            db.query(func.count())
            .select_from(user_has_roles)
            .join(Role, Role.id == user_has_roles.c.role_id)
            .filter(Role.name == role_name, Role.guard_name == settings.DEFAULT_GUARD)
            .scalar()
        )

    @staticmethod
    def is_admin(user: User) -> bool:
        return role_guard.has_admin_role(user.role_names)

    @staticmethod
    def _is_last_admin(db: Session, user: User) -> bool:
        if not UserAccessService.is_admin(user):
            return False
        return UserAccessService.count_role_holders(db, role_guard.admin_role) <= 1

    # ---- Accounts ----
    @staticmethod
    def list_users(
        db: Session,
        search: Optional[str] = None,
        status: Optional[str] = None,
        role: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        """Page through accounts, optionally by name/email text, registration status or role."""
        query = db.query(User)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))
        if status:
            if status not in (RegistrationStatus.PENDING, RegistrationStatus.APPROVED,
                              RegistrationStatus.REJECTED):
                raise ValidationError(f"Unknown registration status '{status}'", field="status")
            query = query.filter(User.registration_status == status)
        if role:
            query = query.filter(User.roles.any(Role.name == role))

        total = query.count()
        users = (
            query.order_by(User.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page, "page_size": page_size}

    @staticmethod
    def update_user(db: Session, user_id: int, data: Dict[str, Any]) -> User:
        """Change profile fields, password or active flag. Unset keys are left alone."""
        user = UserAccessService.get_user(db, user_id)
        changes = {}

        if data.get("full_name") is not None:
            full_name = data["full_name"].strip()
            if not full_name:
                raise ValidationError("Full name is required", field="full_name")
            changes["full_name"] = full_name
        if data.get("email") is not None:
            email = data["email"].strip().lower()
            taken = (
                db.query(User)
                .filter(func.lower(User.email) == email, User.id != user.id)
                .first()
            )
            if taken:
                raise ResourceConflictError("Email is already registered", field="email")
            changes["email"] = email
        if data.get("password"):
            changes["hashed_password"] = hash_password(data["password"])
        if data.get("is_active") is not None:
            if not data["is_active"] and UserAccessService._is_last_admin(db, user):
                raise LastAdminProtectedError("Cannot deactivate the last admin account")
            changes["is_active"] = data["is_active"]

        if changes:
            with atomic(db, "update user"):
                for field, value in changes.items():
                    setattr(user, field, value)
            db.refresh(user)
            logger.info("Updated user %s: %s", user.id, ", ".join(sorted(changes)))
        return user

    # ---- Roles ----
    @staticmethod
    def assign_role(db: Session, user_id: int, role_id: int) -> Dict[str, Any]:
        """Give a user a role. Assigning a role the user already holds is a no-op."""
        user = UserAccessService.get_user(db, user_id)
        role = UserAccessService._get_role(db, role_id)

        result = {"user_id": user.id, "role": role.name, "already_assigned": False}
        if role in user.roles:
            result.update(already_assigned=True, note="User already had this role")
            return result

        with atomic(db, "assign role to user"):
            user.roles.append(role)
        logger.info("Assigned role %s to user %s", role.name, user.id)
        return result

    @staticmethod
    def assign_roles(db: Session, user_id: int, role_ids: List[int]) -> Dict[str, Any]:
        if not role_ids:
            raise ValidationError("At least one role id is required", field="role_ids")
        user = UserAccessService.get_user(db, user_id)
        roles = [UserAccessService._get_role(db, rid) for rid in dict.fromkeys(role_ids)]

        current = {r.id for r in user.roles}
        assigned = [r for r in roles if r.id not in current]
        with atomic(db, "assign roles to user"):
            user.roles.extend(assigned)
        logger.info("Assigned %d roles to user %s", len(assigned), user.id)
        return {
            "user_id": user.id,
            "assigned_roles": [r.name for r in assigned],
            "already_assigned": [r.name for r in roles if r.id in current],
        }

    @staticmethod
    def sync_roles(db: Session, user_id: int, role_ids: List[int]) -> Dict[str, Any]:
        """Replace the user's roles with exactly ``role_ids``. An empty list strips every role."""
        user = UserAccessService.get_user(db, user_id)
        roles = [UserAccessService._get_role(db, rid) for rid in dict.fromkeys(role_ids)]
        names = {r.name for r in roles}

        if role_guard.admin_role not in names and UserAccessService._is_last_admin(db, user):
            logger.warning("Refused replacing roles of last admin %s", user.id)
            raise LastAdminProtectedError("Cannot remove admin role from last admin user")

        previous = set(user.role_names)
        with atomic(db, "replace user roles"):
            user.roles = roles
        db.refresh(user)
        logger.info("Replaced roles of user %s with %s", user.id, sorted(names))
        return {
            "user_id": user.id,
            "roles": user.role_names,
            "added_roles": sorted(names - previous),
            "removed_roles": sorted(previous - names),
        }

    @staticmethod
    def remove_role(db: Session, user_id: int, role_id: int) -> Dict[str, Any]:
        user = UserAccessService.get_user(db, user_id)
        role = UserAccessService._get_role(db, role_id)
        if role not in user.roles:
            raise RoleNotAssignedError("User does not have this role", field="role_id")

        if role.name == role_guard.admin_role and UserAccessService._is_last_admin(db, user):
            logger.warning("Refused removing admin role from last admin %s", user.id)
            raise LastAdminProtectedError("Cannot remove admin role from last admin user")

        with atomic(db, "remove role from user"):
            user.roles.remove(role)
        logger.info("Removed role %s from user %s", role.name, user.id)
        return {"user_id": user.id, "role": role.name}

    @staticmethod
    def remove_all_roles(db: Session, user_id: int) -> Dict[str, Any]:
        user = UserAccessService.get_user(db, user_id)
        if UserAccessService._is_last_admin(db, user):
            logger.warning("Refused stripping roles from last admin %s", user.id)
            raise LastAdminProtectedError("Cannot remove admin role from last admin user")

        removed = list(user.role_names)
        with atomic(db, "remove all roles from user"):
            user.roles = []
        logger.info("Removed %d roles from user %s", len(removed), user.id)
        return {"user_id": user.id, "removed_roles": removed}

    # ---- Direct permissions ----
    @staticmethod
    def assign_permission(db: Session, user_id: int, permission_id: int) -> Dict[str, Any]:
        user = UserAccessService.get_user(db, user_id)
        permission = UserAccessService._get_permission(db, permission_id)

        result = {"user_id": user.id, "permission": permission.name, "already_assigned": False}
        if permission in user.permissions:
            result.update(already_assigned=True, note="User already had this permission")
            return result

        with atomic(db, "assign permission to user"):
            user.permissions.append(permission)
        logger.info("Granted permission %s to user %s", permission.name, user.id)
        return result

    @staticmethod
    def assign_permissions(db: Session, user_id: int, permission_ids: List[int]) -> Dict[str, Any]:
        if not permission_ids:
            raise ValidationError("At least one permission id is required", field="permission_ids")
        user = UserAccessService.get_user(db, user_id)
        permissions = [
            UserAccessService._get_permission(db, pid) for pid in dict.fromkeys(permission_ids)
        ]

        current = {p.id for p in user.permissions}
        assigned = [p for p in permissions if p.id not in current]
        with atomic(db, "assign permissions to user"):
            user.permissions.extend(assigned)
        logger.info("Granted %d permissions to user %s", len(assigned), user.id)
        return {
            "user_id": user.id,
            "assigned_permissions": [p.name for p in assigned],
            "already_assigned": [p.name for p in permissions if p.id in current],
        }

    @staticmethod
    def remove_permission(db: Session, user_id: int, permission_id: int) -> Dict[str, Any]:
        user = UserAccessService.get_user(db, user_id)
        permission = UserAccessService._get_permission(db, permission_id)
        if permission not in user.permissions:
            raise PermissionNotAssignedError(
                "User does not have this permission directly", field="permission_id"
            )

        if role_guard.is_critical_permission(permission.name, UserAccessService.is_admin(user)):
            logger.warning("Refused revoking %s from admin user %s", permission.name, user.id)
            raise CriticalPermissionProtectedError(
                "Cannot remove critical permissions from admin users"
            )

        with atomic(db, "remove permission from user"):
            user.permissions.remove(permission)
        logger.info("Revoked permission %s from user %s", permission.name, user.id)
        return {"user_id": user.id, "permission": permission.name}

    @staticmethod
    def remove_all_permissions(db: Session, user_id: int) -> Dict[str, Any]:
        user = UserAccessService.get_user(db, user_id)
        is_admin = UserAccessService.is_admin(user)
        if any(role_guard.is_critical_permission(p.name, is_admin) for p in user.permissions):
            raise CriticalPermissionProtectedError(
                "Cannot remove all permissions from admin users with critical permissions"
            )

        removed = [p.name for p in user.permissions]
        with atomic(db, "remove all permissions from user"):
            user.permissions = []
        logger.info("Revoked %d direct permissions from user %s", len(removed), user.id)
        return {"user_id": user.id, "removed_permissions": removed}

    @staticmethod
    def get_user_permissions(db: Session, user_id: int) -> Dict[str, Any]:
        """Roles with their permissions, direct grants and the effective union."""
        user = UserAccessService.get_user(db, user_id)
        roles = [
            {"id": r.id, "name": r.name, "permissions": [p.name for p in r.permissions]}
            for r in user.roles
        ]
        direct = [p.name for p in user.permissions]
        effective = set(direct)
        for role in roles:
            effective.update(role["permissions"])
        return {
            "user_id": user.id,
            "roles": roles,
            "direct_permissions": direct,
            "effective_permissions": sorted(effective),
        }

    # ---- Deletion ----
    @staticmethod
    def delete_user(db: Session, actor_id: int, user_id: int) -> None:
        """Delete a user unless it is the actor, the last admin or the primary admin."""
        if actor_id == user_id:
            raise SelfDeletionForbiddenError("Cannot delete your own account")

        user = UserAccessService.get_user(db, user_id)
        if UserAccessService._is_last_admin(db, user):
            raise LastAdminProtectedError("Cannot delete the last admin account")
        if (
            settings.PRIMARY_ADMIN_EMAIL
            and user.email == settings.PRIMARY_ADMIN_EMAIL
            and UserAccessService.is_admin(user)
        ):
            raise PrimaryAdminProtectedError("Cannot delete primary system administrator")

        email = user.email
        with atomic(db, "delete user"):
            user.roles = []
            user.permissions = []
            db.delete(user)
        logger.info("User %s deleted user %s (%s)", actor_id, user_id, email)


user_access_service = UserAccessService()
