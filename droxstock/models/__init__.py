"""Models package — import all models so metadata sees every table."""

from droxstock.models.role import Role, Permission, role_has_permissions
from droxstock.models.user import User, RegistrationStatus, user_has_roles, user_has_permissions
from droxstock.models.daparto import Daparto

__all__ = [
    "Role", "Permission", "User", "RegistrationStatus", "Daparto",
    "role_has_permissions", "user_has_roles", "user_has_permissions",
]
