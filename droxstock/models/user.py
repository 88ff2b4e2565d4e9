"""User model and its role/permission assignment tables."""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Table, func,
)
from sqlalchemy.orm import relationship
from droxstock.db.base import Base


user_has_roles = Table(
    "user_has_roles",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

user_has_permissions = Table(
    "user_has_permissions",
    Base.metadata,
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class RegistrationStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """Account holding roles and direct permissions."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    registration_status = Column(
        String(20), nullable=False, default=RegistrationStatus.APPROVED, index=True
    )
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    roles = relationship(
        "Role", secondary=user_has_roles, back_populates="users",
        lazy="selectin", order_by="Role.name",
    )
    permissions = relationship(
        "Permission", secondary=user_has_permissions, back_populates="users",
        lazy="selectin", order_by="Permission.name",
    )

    @property
    def role_names(self) -> list:
        return [r.name for r in self.roles]
