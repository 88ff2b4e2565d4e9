"""Protection rules for system roles and critical permissions.

The guard holds no database state. Every service that mutates roles,
permissions or assignments asks it first, so the protected sets live in one
place (``settings``) and nowhere else.
"""

from typing import Iterable, Optional

from droxstock.core.config import Settings, settings


class RoleGuard:
    """Answers whether a role or permission operation is allowed."""

    OPERATIONS = ("create", "delete", "rename")

    def __init__(
        self,
        system_roles: Iterable[str],
        critical_permissions: Iterable[str],
        admin_role: str = "admin",
        system_permissions: Iterable[str] = (),
        protected_roles: Optional[Iterable[str]] = None,
        role_names: Optional[dict] = None,
    ):
        self.system_roles = frozenset(system_roles)
        self.protected_roles = (
            frozenset(protected_roles) | self.system_roles
            if protected_roles is not None
            else self.system_roles
        )
        self.critical_permissions = frozenset(critical_permissions)
        self.system_permissions = frozenset(system_permissions)
        self.admin_role = admin_role
        self._role_names = dict(role_names or {})

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "RoleGuard":
        names = dict(cfg.SYSTEM_ROLES)
        return cls(
            system_roles=names.values(),
            critical_permissions=cfg.CRITICAL_PERMISSIONS,
            admin_role=names.get(cfg.ADMIN_ROLE_KEY, cfg.ADMIN_ROLE_KEY),
            system_permissions=cfg.SYSTEM_PERMISSIONS,
            protected_roles=[names.get(key, key) for key in cfg.PROTECTED_ROLES],
            role_names=names,
        )

    def role_name(self, key: str) -> str:
        """Resolve a configured role key (``basic_user``) to its stored name."""
        return self._role_names.get(key, key)

    # ---- Roles ----
    def is_system_role(self, name: Optional[str]) -> bool:
        return name in self.system_roles

    def is_protected_role(self, name: Optional[str]) -> bool:
        return name in self.protected_roles

    def can_delete_role(self, name: str) -> bool:
        return not self.is_protected_role(name)

    def can_rename_role(self, old_name: str, new_name: Optional[str]) -> bool:
        if not new_name or not new_name.strip():
            return False
        if self.is_protected_role(old_name):
            return False
        if self.is_system_role(new_name) and new_name != old_name:
            return False
        return True

    def validate_role_operation(
        self, operation: str, name: str, new_name: Optional[str] = None
    ) -> Optional[str]:
        """Return the message of the first rule the operation breaks, or None."""
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown role operation '{operation}'")

        if operation == "delete":
            if not self.can_delete_role(name):
                return (
                    f"Cannot delete protected system role '{name}'. "
                    "This role is required for system functionality."
                )
            return None

        if operation == "create":
            if self.is_system_role(name):
                return f"Cannot create role '{name}' as it conflicts with a system role name."
            return None

        if not new_name or not new_name.strip():
            return "New role name is required for rename operation."
        if self.is_protected_role(name):
            return (
                f"Cannot rename system role '{name}'. "
                "System roles are protected to maintain functionality."
            )
        if self.is_system_role(new_name) and new_name != name:
            return f"Cannot rename to '{new_name}' as it conflicts with a system role name."
        return None

    def has_admin_role(self, role_names: Iterable[str]) -> bool:
        return self.admin_role in set(role_names)

    # ---- Permissions ----
    def is_critical_permission(self, permission_name: str, subject_has_admin_role: bool) -> bool:
        """Critical permissions only matter for subjects holding the admin role."""
        return subject_has_admin_role and permission_name in self.critical_permissions

    def is_system_permission(self, name: str) -> bool:
        return name in self.system_permissions or name in self.critical_permissions


role_guard = RoleGuard.from_settings()
