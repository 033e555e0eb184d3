"""
User management.

This module provides:
- Request/response models for registration and login
- The SQLAlchemy-backed credential store
- The FastAPI dependency wiring a store to the request's database session
"""
import re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from fastapi import Depends
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from authgate.auth.exceptions import (
    AccountLockedError,
    CredentialConflict,
    CredentialStoreUnavailable,
    PasswordPolicyError,
    RoleNotFoundError,
)
from authgate.auth.models import Role, User, user_roles
from authgate.auth.passwords import BcryptPasswordHasher, PasswordHasher, PasswordPolicy
from authgate.auth.store import CredentialStore, UserRecord
from authgate.base_service import get_db_session, logger
from authgate.config import Settings, get_settings

# Regex pattern for validation
USERNAME_PATTERN = r"^[a-zA-Z0-9\-._@+]+$"


def _check_utf8(value: str, field_name: str) -> str:
    # JSON escapes can smuggle in lone surrogates
    try:
        value.encode('utf-8')
    except UnicodeEncodeError:
        raise ValueError(f"{to_camel(field_name)} contains characters that are not valid UTF-8")
    return value


# Pydantic models for request validation
class RegisterRequest(BaseModel):
    """Model for user registration."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    username: str = Field(..., max_length=256)
    email: EmailStr
    password: str
    first_name: str = Field(..., max_length=256)
    last_name: str = Field(..., max_length=256)

    @field_validator('username', 'password', 'first_name', 'last_name')
    @classmethod
    def must_not_be_blank(cls, v, info):
        if not v.strip():
            raise ValueError(f"{to_camel(info.field_name)} is required")
        return v

    @field_validator('username', 'password', 'first_name', 'last_name')
    @classmethod
    def must_be_utf8(cls, v, info):
        return _check_utf8(v, info.field_name)

    @field_validator('username')
    @classmethod
    def username_must_be_valid(cls, v):
        if not re.match(USERNAME_PATTERN, v):
            raise ValueError('Username may only contain letters, digits and -._@+')
        return v


class LoginRequest(BaseModel):
    """Model for user login."""
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator('password')
    @classmethod
    def must_be_utf8(cls, v, info):
        return _check_utf8(v, info.field_name)


class AuthResponse(BaseModel):
    """
    Body returned by every auth endpoint.

    ``token`` and ``expiration`` are present only after a successful login;
    ``refresh_token`` is reserved and always None.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_success: bool
    message: str
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiration: Optional[datetime] = None


def _normalize(value: str) -> str:
    return value.strip().lower()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyCredentialStore(CredentialStore):
    """
    Credential store backed by the async SQLAlchemy session of one request.

    Uniqueness of usernames and emails is enforced by unique indexes on the
    normalized columns, so a registration racing past the pre-check still
    fails with ``CredentialConflict``.
    """

    def __init__(
        self,
        db: AsyncSession,
        hasher: Optional[PasswordHasher] = None,
        policy: Optional[PasswordPolicy] = None,
        max_failed_attempts: int = 0,
        lockout_duration: timedelta = timedelta(minutes=5),
    ):
        self.db = db
        self.hasher = hasher or BcryptPasswordHasher()
        self.policy = policy or PasswordPolicy()
        self.max_failed_attempts = max_failed_attempts
        self.lockout_duration = lockout_duration

    @asynccontextmanager
    async def _storage(self, context: str):
        try:
            yield
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"ERROR: {str(e)} | Context: credential store {context}")
            await self.db.rollback()
            raise CredentialStoreUnavailable() from e

    @staticmethod
    def _to_record(user: User) -> UserRecord:
        return UserRecord(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            password_hash=user.password_hash,
        )

    async def create_user(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        roles: Sequence[str] = (),
    ) -> UserRecord:
        normalized_username = _normalize(username)
        normalized_email = _normalize(email)

        async with self._storage("create_user"):
            # Check if username or email already exists
            result = await self.db.execute(
                select(User).where(
                    or_(
                        User.normalized_username == normalized_username,
                        User.normalized_email == normalized_email
                    )
                )
            )
            conflicts = []
            for existing in result.scalars().all():
                if existing.normalized_username == normalized_username:
                    conflicts.append(f"Username '{username}' is already taken.")
                if existing.normalized_email == normalized_email:
                    conflicts.append(f"Email '{email}' is already taken.")

            password_errors = self.policy.validate(password)
            if conflicts:
                raise CredentialConflict(conflicts + password_errors)
            if password_errors:
                raise PasswordPolicyError(password_errors)

            role_ids = []
            for role_name in roles:
                role_id = await self.db.scalar(select(Role.id).where(Role.name == role_name))
                if role_id is None:
                    raise RoleNotFoundError(role_name)
                role_ids.append(role_id)

            new_user = User(
                username=username,
                normalized_username=normalized_username,
                email=email,
                normalized_email=normalized_email,
                first_name=first_name,
                last_name=last_name,
                password_hash=await run_in_threadpool(self.hasher.hash, password),
                failed_login_attempts=0,
            )
            self.db.add(new_user)
            try:
                # User and role assignments commit together
                await self.db.flush()
                if role_ids:
                    await self.db.execute(
                        insert(user_roles),
                        [{"user_id": new_user.id, "role_id": role_id} for role_id in role_ids]
                    )
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise CredentialConflict(
                    [f"Username '{username}' or email '{email}' is already taken."]
                ) from e

            return self._to_record(new_user)

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._storage("find_by_email"):
            result = await self.db.execute(
                select(User).where(User.normalized_email == _normalize(email))
            )
            user = result.scalar_one_or_none()
        return self._to_record(user) if user is not None else None

    async def verify_password(self, user: Optional[UserRecord], password: str) -> bool:
        if user is None:
            return await run_in_threadpool(self.hasher.verify_placeholder, password)
        if self.max_failed_attempts <= 0:
            return await run_in_threadpool(self.hasher.verify, password, user.password_hash)

        async with self._storage("verify_password"):
            result = await self.db.execute(
                select(User.password_hash, User.locked_until).where(User.id == user.id)
            )
            row = result.one_or_none()
            if row is None:
                return await run_in_threadpool(self.hasher.verify_placeholder, password)

            now = datetime.now(timezone.utc)
            if row.locked_until is not None and _as_utc(row.locked_until) > now:
                raise AccountLockedError(_as_utc(row.locked_until).isoformat())

            valid = await run_in_threadpool(self.hasher.verify, password, row.password_hash)
            this_user = update(User).where(User.id == user.id)
            if valid:
                await self.db.execute(this_user.values(failed_login_attempts=0, locked_until=None))
            else:
                # Increment in the database so concurrent failures all count
                await self.db.execute(
                    this_user.values(failed_login_attempts=User.failed_login_attempts + 1)
                )
                attempts = await self.db.scalar(
                    select(User.failed_login_attempts).where(User.id == user.id)
                )
                if attempts >= self.max_failed_attempts:
                    await self.db.execute(
                        this_user.values(
                            failed_login_attempts=0,
                            locked_until=now + self.lockout_duration
                        )
                    )
            await self.db.commit()
            return valid

    async def get_roles(self, user: UserRecord) -> List[str]:
        async with self._storage("get_roles"):
            result = await self.db.execute(
                select(Role.name)
                .join(user_roles, user_roles.c.role_id == Role.id)
                .where(user_roles.c.user_id == user.id)
            )
            return sorted(result.scalars().all())

    async def ensure_role(self, role_name: str) -> None:
        async with self._storage("ensure_role"):
            result = await self.db.execute(select(Role).where(Role.name == role_name))
            if result.scalar_one_or_none() is not None:
                return

            self.db.add(Role(name=role_name))
            try:
                await self.db.commit()
            except IntegrityError:
                # Created by a concurrent registration
                await self.db.rollback()

    async def add_to_role(self, user: UserRecord, role_name: str) -> None:
        async with self._storage("add_to_role"):
            result = await self.db.execute(select(Role.id).where(Role.name == role_name))
            role_id = result.scalar_one_or_none()
            if role_id is None:
                raise RoleNotFoundError(role_name)

            result = await self.db.execute(
                select(user_roles.c.user_id).where(
                    user_roles.c.user_id == user.id,
                    user_roles.c.role_id == role_id
                )
            )
            if result.scalar_one_or_none() is not None:
                return

            await self.db.execute(insert(user_roles).values(user_id=user.id, role_id=role_id))
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()


async def get_credential_store(
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> CredentialStore:
    """Dependency providing a credential store bound to the request's session."""
    return SQLAlchemyCredentialStore(
        db,
        hasher=BcryptPasswordHasher(rounds=settings.bcrypt_rounds),
        max_failed_attempts=settings.lockout_max_failed_attempts,
        lockout_duration=timedelta(minutes=settings.lockout_minutes),
    )
