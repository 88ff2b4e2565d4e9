"""Pytest configuration and fixtures for the test suite."""

import os
from decimal import Decimal

# Set test environment BEFORE any droxstock imports
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.pop("SMTP_HOST", None)

import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from droxstock.db.base import Base
from droxstock.db.seeds.seed_roles import seed_roles
from droxstock.core.security import hash_password
from droxstock.models import User, Role, Permission, Daparto
from droxstock.services.cache_service import CacheService
from droxstock.services.job_status_service import JobStatusService
from droxstock.services.notification_service import NotificationService

TEST_PASSWORD_HASH = hash_password("secret-password")


class FakeRedis:
    """In-memory stand-in for the few redis commands the cache uses."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)
            self.ttls.pop(key, None)

    def ping(self):
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    """System roles and permissions as ``db seed`` creates them."""
    seed_roles(db)
    return {role.name: role for role in db.query(Role).all()}


@pytest.fixture
def make_user(db):
    def _make_user(email, role_names=(), permission_names=(), **fields):
        user = User(
            email=email,
            hashed_password=TEST_PASSWORD_HASH,
            full_name=fields.pop("full_name", email.split("@")[0].title()),
            **fields,
        )
        user.roles = db.query(Role).filter(Role.name.in_(list(role_names))).all() if role_names else []
        user.permissions = (
            db.query(Permission).filter(Permission.name.in_(list(permission_names))).all()
            if permission_names else []
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_record(db):
    def _make_record(number, **fields):
        values = {
            "interne_artikelnummer": number,
            "tiltle": "Bremsscheibe",
            "teilemarke_teilenummer": "BOSCH 0986479",
            "preis": Decimal("100.00"),
            "zustand": 1,
            "pfand": 0,
            "versandklasse": 2,
            "lieferzeit": 3,
        }
        values.update(fields)
        record = Daparto(**values)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record
    return _make_record


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def job_store(fake_redis):
    return JobStatusService(cache=CacheService(client=fake_redis), ttl_seconds=86400)


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationService)
