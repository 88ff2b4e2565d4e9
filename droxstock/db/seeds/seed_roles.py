"""Seed system roles and permissions into the database."""

from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.role_guard import role_guard
from droxstock.models import Role, Permission

ROLE_DESCRIPTIONS = {
    "admin": "Full system access",
    "manager": "Manages the parts catalog and CSV imports",
    "basic_user": "Read access to the catalog",
    "user": "Self-registered account",
}

MANAGER_PERMISSIONS = [
    "view dapartos", "create dapartos", "edit dapartos", "delete dapartos",
    "upload csv", "view csv status", "view profile", "view system stats",
]
BASIC_USER_PERMISSIONS = ["view dapartos", "view csv status", "view profile"]
USER_PERMISSIONS = ["view profile"]


def _role_permissions() -> dict:
    all_permissions = list(dict.fromkeys(settings.SYSTEM_PERMISSIONS + settings.CRITICAL_PERMISSIONS))
    return {
        role_guard.role_name("admin"): all_permissions,
        role_guard.role_name("manager"): MANAGER_PERMISSIONS,
        role_guard.role_name("basic_user"): BASIC_USER_PERMISSIONS,
        role_guard.role_name("user"): USER_PERMISSIONS,
    }


def seed_roles(db: Session) -> None:
    """Insert system permissions and roles if they don't already exist."""
    guard = settings.DEFAULT_GUARD
    permissions = {}
    for name in dict.fromkeys(settings.SYSTEM_PERMISSIONS + settings.CRITICAL_PERMISSIONS):
        permission = (
            db.query(Permission)
            .filter(Permission.name == name, Permission.guard_name == guard)
            .first()
        )
        if not permission:
            permission = Permission(name=name, guard_name=guard, description="System permission")
            db.add(permission)
        permissions[name] = permission

    for key, role_name in settings.SYSTEM_ROLES.items():
        role = db.query(Role).filter(Role.name == role_name, Role.guard_name == guard).first()
        if not role:
            role = Role(name=role_name, guard_name=guard, description=ROLE_DESCRIPTIONS.get(key))
            db.add(role)
        wanted = _role_permissions().get(role_name, [])
        for name in wanted:
            if permissions[name] not in role.permissions:
                role.permissions.append(permissions[name])

    db.commit()
    print(f"✅ Seeded {len(permissions)} permissions and {len(settings.SYSTEM_ROLES)} roles")
