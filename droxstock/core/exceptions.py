"""Custom exception classes for Droxstock.

Every domain error carries a stable ``code`` and an HTTP status so the API
layer can translate it without knowing which service raised it.
"""

from typing import Optional, Dict, Any


class DroxstockError(Exception):
    """Base exception for Droxstock."""

    status_code: int = 400
    code: str = "error"

    def __init__(
        self,
        message: str = "An error occurred",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(DroxstockError):
    """Raised when authentication fails."""
    status_code = 401
    code = "authentication_failed"


class AuthorizationError(DroxstockError):
    """Raised when user lacks permission."""
    status_code = 403
    code = "forbidden"


class ResourceNotFoundError(DroxstockError):
    """Raised when a requested resource is not found."""
    status_code = 404
    code = "not_found"


class ResourceConflictError(DroxstockError):
    """Raised when a resource already exists or is still referenced."""
    status_code = 422
    code = "conflict"


class ValidationError(DroxstockError):
    """Raised when input validation fails."""
    status_code = 422
    code = "validation_error"


class BusinessRuleViolation(DroxstockError):
    """Raised when an operation would break a safety rule."""
    status_code = 422
    code = "business_rule_violation"


class StorageError(DroxstockError):
    """Raised when a database or MinIO operation fails."""
    status_code = 500
    code = "storage_error"


# ---- Not found ----
class RoleNotFoundError(ResourceNotFoundError):
    code = "role_not_found"


class PermissionNotFoundError(ResourceNotFoundError):
    code = "permission_not_found"


class UserNotFoundError(ResourceNotFoundError):
    code = "user_not_found"


class RecordNotFoundError(ResourceNotFoundError):
    code = "record_not_found"


class JobNotFoundError(ResourceNotFoundError):
    code = "job_not_found"


# ---- Conflicts ----
class NameConflictError(ResourceConflictError):
    code = "name_conflict"


class DuplicateRecordError(ResourceConflictError):
    code = "duplicate_record"


class RoleProtectedError(ResourceConflictError):
    code = "role_protected"


class RoleInUseError(ResourceConflictError):
    code = "role_in_use"


class PermissionInUseError(ResourceConflictError):
    code = "permission_in_use"


class SystemPermissionProtectedError(ResourceConflictError):
    code = "system_permission_protected"


class RoleNotAssignedError(ResourceConflictError):
    code = "role_not_assigned"


class PermissionNotAssignedError(ResourceConflictError):
    code = "permission_not_assigned"


class RegistrationNotPendingError(ResourceConflictError):
    code = "registration_not_pending"


# ---- Validation ----
class InvalidGuardError(ValidationError):
    code = "invalid_guard"


class GuardMismatchError(ValidationError):
    code = "guard_mismatch"


class InvalidInputError(ValidationError):
    """Rejected upload or malformed request payload."""
    code = "invalid_input"


# ---- Business rules ----
class LastAdminProtectedError(BusinessRuleViolation):
    code = "last_admin_protected"


class SelfDeletionForbiddenError(BusinessRuleViolation):
    code = "self_deletion_forbidden"


class PrimaryAdminProtectedError(BusinessRuleViolation):
    code = "primary_admin_protected"


class CriticalPermissionProtectedError(BusinessRuleViolation):
    code = "critical_permission_protected"


class NoDataError(BusinessRuleViolation):
    status_code = 400
    code = "no_data"
