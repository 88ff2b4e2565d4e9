"""Registration service — self-registration and the admin approval queue."""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.exceptions import (
    ResourceConflictError, RegistrationNotPendingError, RoleNotFoundError, ValidationError,
)
from droxstock.core.role_guard import role_guard
from droxstock.core.security import hash_password
from droxstock.db.session import atomic
from droxstock.models import User, Role, RegistrationStatus
from droxstock.services.notification_service import NotificationService, notification_service
from droxstock.services.user_access_service import UserAccessService

logger = logging.getLogger("droxstock.registration")


class RegistrationService:
    """Creates accounts and moves them through pending → approved | rejected."""

    def __init__(self, notifier: Optional[NotificationService] = None):
        self.notifier = notifier or notification_service

    @staticmethod
    def _role_by_name(db: Session, name: str) -> Role:
        role = (
            db.query(Role)
            .filter(Role.name == name, Role.guard_name == settings.DEFAULT_GUARD)
            .first()
        )
        if not role:
            raise RoleNotFoundError(f"Role '{name}' not found", field="role_name")
        return role

    @staticmethod
    def _check_email_free(db: Session, email: str) -> None:
        if db.query(User).filter(func.lower(User.email) == email.lower()).first():
            raise ResourceConflictError("Email is already registered", field="email")

    def register(self, db: Session, email: str, password: str, full_name: str) -> User:
        """Create a pending account holding the self-registration default role."""
        email = email.strip().lower()
        if not full_name or not full_name.strip():
            raise ValidationError("Full name is required", field="full_name")
        self._check_email_free(db, email)
        role = self._role_by_name(db, role_guard.role_name(settings.SELF_REGISTRATION_ROLE_KEY))

        with atomic(db, "register user"):
            user = User(
                email=email,
                hashed_password=hash_password(password),
                full_name=full_name.strip(),
                is_active=True,
                registration_status=RegistrationStatus.PENDING,
            )
            user.roles = [role]
            db.add(user)
        db.refresh(user)
        logger.info("Registered pending user %s (%s)", user.id, user.email)
        return user

    def create_user(self, db: Session, email: str, password: str, full_name: str,
                    role_name: Optional[str] = None) -> User:
        """Create an approved account, defaulting to the admin-created role."""
        email = email.strip().lower()
        self._check_email_free(db, email)
        role = self._role_by_name(
            db, role_name or role_guard.role_name(settings.ADMIN_CREATED_ROLE_KEY)
        )

        with atomic(db, "create user"):
            user = User(
                email=email,
                hashed_password=hash_password(password),
                full_name=full_name,
                is_active=True,
                registration_status=RegistrationStatus.APPROVED,
                approved_at=datetime.now(timezone.utc),
            )
            user.roles = [role]
            db.add(user)
        db.refresh(user)
        logger.info("Created user %s (%s) with role %s", user.id, user.email, role.name)
        return user

    @staticmethod
    def list_pending(db: Session, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        query = db.query(User).filter(User.registration_status == RegistrationStatus.PENDING)
        total = query.count()
        users = (
            query.order_by(User.created_at.asc(), User.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page, "page_size": page_size}

    @staticmethod
    def statistics(db: Session) -> Dict[str, int]:
        counts = dict(
            db.query(User.registration_status, func.count(User.id))
            .group_by(User.registration_status)
            .all()
        )
        return {
            "pending": counts.get(RegistrationStatus.PENDING, 0),
            "approved": counts.get(RegistrationStatus.APPROVED, 0),
            "rejected": counts.get(RegistrationStatus.REJECTED, 0),
        }

    @staticmethod
    def _pending_user(db: Session, user_id: int) -> User:
        user = UserAccessService.get_user(db, user_id)
        if user.registration_status != RegistrationStatus.PENDING:
            raise RegistrationNotPendingError(
                f"User registration is not pending (current status: {user.registration_status})"
            )
        return user

    def approve(self, db: Session, actor_id: int, user_id: int,
                role_name: Optional[str] = None) -> User:
        user = self._pending_user(db, user_id)
        role = self._role_by_name(
            db, role_name or role_guard.role_name(settings.ADMIN_CREATED_ROLE_KEY)
        )

        with atomic(db, "approve user"):
            user.registration_status = RegistrationStatus.APPROVED
            user.approved_at = datetime.now(timezone.utc)
            user.approved_by = actor_id
            user.rejection_reason = None
            if role not in user.roles:
                user.roles.append(role)
        logger.info("User %s approved registration of %s as %s", actor_id, user.id, role.name)

        self.notifier.send_registration_approved(user.email, user.full_name)
        return user

    def reject(self, db: Session, actor_id: int, user_id: int, reason: str) -> User:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", field="reason")
        user = self._pending_user(db, user_id)

        with atomic(db, "reject user"):
            user.registration_status = RegistrationStatus.REJECTED
            user.rejected_at = datetime.now(timezone.utc)
            user.rejection_reason = reason.strip()
        logger.info("User %s rejected registration of %s", actor_id, user.id)

        self.notifier.send_registration_rejected(user.email, user.full_name, user.rejection_reason)
        return user


registration_service = RegistrationService()
