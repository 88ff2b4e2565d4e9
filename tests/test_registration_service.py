"""Tests for self-registration and the approval queue."""

import pytest

from droxstock.core.exceptions import (
    ResourceConflictError, RegistrationNotPendingError, RoleNotFoundError, ValidationError,
)
from droxstock.core.security import verify_password
from droxstock.models import RegistrationStatus
from droxstock.services.registration_service import RegistrationService


@pytest.fixture
def registrations(notifier):
    return RegistrationService(notifier=notifier)


class TestRegister:
    def test_register_creates_pending_user(self, db, seeded, registrations):
        user = registrations.register(db, " New.User@Example.com ", "long-password", "New User")

        assert user.email == "new.user@example.com"
        assert user.registration_status == RegistrationStatus.PENDING
        assert user.role_names == ["user"]
        assert verify_password("long-password", user.hashed_password)

    def test_email_taken_case_insensitive(self, db, seeded, registrations, make_user):
        make_user("taken@example.com")
        with pytest.raises(ResourceConflictError) as exc:
            registrations.register(db, "TAKEN@example.com", "long-password", "Someone")
        assert exc.value.field == "email"

    def test_blank_name(self, db, seeded, registrations):
        with pytest.raises(ValidationError):
            registrations.register(db, "a@example.com", "long-password", "  ")

    def test_create_user_is_approved_with_basic_role(self, db, seeded, registrations):
        user = registrations.create_user(db, "staff@example.com", "long-password", "Staff")

        assert user.registration_status == RegistrationStatus.APPROVED
        assert user.approved_at is not None
        assert user.role_names == ["basic_user"]


class TestApproval:
    def test_approve_adds_default_role_and_notifies(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        pending = registrations.register(db, "p@example.com", "long-password", "Pending Person")

        user = registrations.approve(db, actor_id=admin.id, user_id=pending.id)

        assert user.registration_status == RegistrationStatus.APPROVED
        assert user.approved_by == admin.id
        assert sorted(user.role_names) == ["basic_user", "user"]
        registrations.notifier.send_registration_approved.assert_called_once_with(
            "p@example.com", "Pending Person"
        )

    def test_approve_with_explicit_role(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        pending = registrations.register(db, "p@example.com", "long-password", "Pending Person")

        user = registrations.approve(db, admin.id, pending.id, role_name="manager")

        assert "manager" in user.role_names

    def test_approve_with_unknown_role(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        pending = registrations.register(db, "p@example.com", "long-password", "Pending Person")

        with pytest.raises(RoleNotFoundError):
            registrations.approve(db, admin.id, pending.id, role_name="ghost")
        assert pending.registration_status == RegistrationStatus.PENDING

    def test_reject_records_reason(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        pending = registrations.register(db, "p@example.com", "long-password", "Pending Person")

        user = registrations.reject(db, admin.id, pending.id, "  Unknown company  ")

        assert user.registration_status == RegistrationStatus.REJECTED
        assert user.rejection_reason == "Unknown company"
        assert user.rejected_at is not None
        registrations.notifier.send_registration_rejected.assert_called_once_with(
            "p@example.com", "Pending Person", "Unknown company"
        )

    def test_reject_requires_reason(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        pending = registrations.register(db, "p@example.com", "long-password", "Pending Person")
        with pytest.raises(ValidationError):
            registrations.reject(db, admin.id, pending.id, " ")

    def test_only_pending_users_can_be_decided(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        approved = make_user("ok@example.com")

        with pytest.raises(RegistrationNotPendingError):
            registrations.approve(db, admin.id, approved.id)
        with pytest.raises(RegistrationNotPendingError):
            registrations.reject(db, admin.id, approved.id, "late")
        registrations.notifier.send_registration_approved.assert_not_called()


class TestQueue:
    def test_list_pending_and_statistics(self, db, seeded, registrations, make_user):
        admin = make_user("boss@example.com", role_names=["admin"])
        first = registrations.register(db, "one@example.com", "long-password", "One")
        registrations.register(db, "two@example.com", "long-password", "Two")
        third = registrations.register(db, "three@example.com", "long-password", "Three")
        registrations.reject(db, admin.id, third.id, "spam")

        pending = registrations.list_pending(db)

        assert pending["total"] == 2
        assert pending["users"][0].id == first.id
        assert registrations.statistics(db) == {"pending": 2, "approved": 1, "rejected": 1}
