"""Users, approver roles and permission codes.

Roles serve twice: their permission codes gate the HTTP surface, and approval
steps name the roles allowed to decide them.
"""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, UniqueConstraint, DateTime, func
from werkzeug.security import generate_password_hash, check_password_hash

Base = declarative_base()


def _updated_at():
    return mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Permission(Base):
    __tablename__ = 'permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # SERVICE.ACTION, e.g. PERMIT.DECIDE
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    service: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = _updated_at()


class Role(Base):
    """Approver role. Approval steps authorise roles, never individual users."""
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = _updated_at()

    permissions: Mapped[List['RolePermission']] = relationship(
        'RolePermission', back_populates='role', cascade='all, delete-orphan'
    )
    user_roles: Mapped[List['UserRole']] = relationship('UserRole', back_populates='role', cascade='all, delete-orphan')

    @property
    def permission_codes(self) -> List[str]:
        return sorted(rp.permission.code for rp in self.permissions)


class RolePermission(Base):
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id: Mapped[int] = mapped_column(ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)

    role = relationship('Role', back_populates='permissions')
    permission = relationship('Permission')

    __table_args__ = (UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),)


class User(Base):
    """Back-office account: desk clerks, approvers and administrators.

    ``company_id`` and ``subdistrict_id`` are copied into the JWT at login and
    become the default tenant scope of the requests the user submits.
    """
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    company_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    subdistrict_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    updated_at: Mapped[datetime] = _updated_at()

    user_roles: Mapped[List['UserRole']] = relationship('UserRole', back_populates='user', cascade='all, delete-orphan')

    def set_password(self, raw: str):
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        return bool(self.password_hash) and check_password_hash(self.password_hash, raw)


class UserRole(Base):
    __tablename__ = 'user_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)

    user = relationship('User', back_populates='user_roles')
    role = relationship('Role', back_populates='user_roles')

    __table_args__ = (UniqueConstraint('user_id', 'role_id', name='uq_user_role'),)
