"""
Authentication models for authgate.

This module defines SQLAlchemy models for:
- Users
- Roles
- User/role assignments
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table

from authgate.base_service import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Association table for many-to-many relationship between users and roles
user_roles = Table(
    'user_roles',
    Base.metadata,
    Column('user_id', String(36), ForeignKey('users.id'), primary_key=True),
    Column('role_id', String(36), ForeignKey('roles.id'), primary_key=True)
)


class User(Base):
    """User model for authentication and authorization."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(256), nullable=False)
    normalized_username = Column(String(256), unique=True, index=True, nullable=False)
    email = Column(String(256), nullable=False)
    normalized_email = Column(String(256), unique=True, index=True, nullable=False)
    first_name = Column(String(256), nullable=False)
    last_name = Column(String(256), nullable=False)
    password_hash = Column(String, nullable=False)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Role(Base):
    """Named permission group."""
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(256), unique=True, index=True, nullable=False)
