"""Seed the primary admin user from env vars."""

from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.role_guard import role_guard
from droxstock.models import User
from droxstock.services.registration_service import registration_service


def seed_admin(db: Session) -> None:
    """Create the admin user if not already present."""
    existing = db.query(User).filter(User.email == settings.ADMIN_EMAIL).first()
    if existing:
        print(f"ℹ️  Admin '{settings.ADMIN_EMAIL}' already exists, skipping.")
        return

    registration_service.create_user(
        db,
        email=settings.ADMIN_EMAIL,
        password=settings.ADMIN_PASSWORD,
        full_name="System Administrator",
        role_name=role_guard.admin_role,
    )
    print(f"✅ Created admin: {settings.ADMIN_EMAIL}")
