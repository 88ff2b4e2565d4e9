"""Role and permission models for RBAC."""

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Table, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from droxstock.db.base import Base


role_has_permissions = Table(
    "role_has_permissions",
    Base.metadata,
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    """Named role scoped to a guard."""
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("name", "guard_name", name="uq_roles_name_guard"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(125), nullable=False, index=True)
    guard_name = Column(String(125), nullable=False, default="api")
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    permissions = relationship(
        "Permission",
        secondary=role_has_permissions,
        back_populates="roles",
        lazy="selectin",
        order_by="Permission.name",
    )
    users = relationship("User", secondary="user_has_roles", back_populates="roles")


class Permission(Base):
    """Named permission scoped to a guard."""
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("name", "guard_name", name="uq_permissions_name_guard"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(125), nullable=False, index=True)
    guard_name = Column(String(125), nullable=False, default="api")
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    roles = relationship("Role", secondary=role_has_permissions, back_populates="permissions")
    users = relationship("User", secondary="user_has_permissions", back_populates="permissions")
