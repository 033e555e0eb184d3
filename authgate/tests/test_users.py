"""
Test cases for the SQLAlchemy credential store.
"""
import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from authgate.auth.exceptions import (
    AccountLockedError,
    CredentialConflict,
    CredentialStoreUnavailable,
    PasswordPolicyError,
    RoleNotFoundError,
)
from authgate.auth.models import Role
from authgate.auth.users import SQLAlchemyCredentialStore
from conftest import STRONG_PASSWORD, make_store


async def create_alice(store, **overrides):
    fields = dict(
        username="alice",
        email="alice@example.com",
        password=STRONG_PASSWORD,
        first_name="Alice",
        last_name="Liddell",
    )
    fields.update(overrides)
    return await store.create_user(**fields)


@pytest.mark.asyncio
async def test_create_and_find_user(store):
    user = await create_alice(store)

    assert user.id
    assert user.username == "alice"
    assert user.password_hash != STRONG_PASSWORD

    found = await store.find_by_email("ALICE@example.com")
    assert found == user


@pytest.mark.asyncio
async def test_find_unknown_email_returns_none(store):
    assert await store.find_by_email("nobody@example.com") is None


@pytest.mark.asyncio
async def test_duplicate_email_conflicts(store):
    await create_alice(store)

    with pytest.raises(CredentialConflict) as exc_info:
        await create_alice(store, username="alice2", email="Alice@Example.com")

    assert exc_info.value.errors == ["Email 'Alice@Example.com' is already taken."]


@pytest.mark.asyncio
async def test_duplicate_username_and_email_both_reported(store):
    await create_alice(store)

    with pytest.raises(CredentialConflict) as exc_info:
        await create_alice(store)

    assert exc_info.value.errors == [
        "Username 'alice' is already taken.",
        "Email 'alice@example.com' is already taken.",
    ]


@pytest.mark.asyncio
async def test_weak_password_refused(store):
    with pytest.raises(PasswordPolicyError) as exc_info:
        await create_alice(store, password="password")

    assert "Passwords must have at least one digit ('0'-'9')." in exc_info.value.errors
    assert await store.find_by_email("alice@example.com") is None


@pytest.mark.asyncio
async def test_verify_password(store):
    user = await create_alice(store)

    assert await store.verify_password(user, STRONG_PASSWORD)
    assert not await store.verify_password(user, "Wrong-passw0rd")


@pytest.mark.asyncio
async def test_roles_are_created_once_and_assigned_idempotently(store, session):
    user = await create_alice(store)

    await store.ensure_role("User")
    await store.ensure_role("User")
    await store.add_to_role(user, "User")
    await store.add_to_role(user, "User")

    count = await session.scalar(select(func.count()).select_from(Role))
    assert count == 1
    assert await store.get_roles(user) == ["User"]


@pytest.mark.asyncio
async def test_get_roles_lists_every_assignment(store):
    user = await create_alice(store)
    for role in ("User", "Admin"):
        await store.ensure_role(role)
        await store.add_to_role(user, role)

    assert await store.get_roles(user) == ["Admin", "User"]


@pytest.mark.asyncio
async def test_create_user_assigns_roles_in_same_transaction(store):
    await store.ensure_role("User")

    user = await create_alice(store, roles=["User"])

    assert await store.get_roles(user) == ["User"]


@pytest.mark.asyncio
async def test_create_user_with_unknown_role_persists_nothing(store):
    with pytest.raises(RoleNotFoundError):
        await create_alice(store, roles=["Ghost"])

    assert await store.find_by_email("alice@example.com") is None


@pytest.mark.asyncio
async def test_assigning_unknown_role_fails(store):
    user = await create_alice(store)

    with pytest.raises(RoleNotFoundError):
        await store.add_to_role(user, "Ghost")


@pytest.mark.asyncio
async def test_concurrent_ensure_role_yields_one_row(session_factory):
    async with session_factory() as first, session_factory() as second:
        await asyncio.gather(
            make_store(first).ensure_role("User"),
            make_store(second).ensure_role("User"),
        )

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(Role))
    assert count == 1


@pytest.mark.asyncio
async def test_lockout_after_repeated_failures(session):
    store = make_store(session, max_failed_attempts=2, lockout_duration=timedelta(minutes=5))
    user = await create_alice(store)

    assert not await store.verify_password(user, "Wrong-passw0rd")
    assert not await store.verify_password(user, "Wrong-passw0rd")

    with pytest.raises(AccountLockedError):
        await store.verify_password(user, STRONG_PASSWORD)


@pytest.mark.asyncio
async def test_successful_login_resets_failure_count(session):
    store = make_store(session, max_failed_attempts=2)
    user = await create_alice(store)

    assert not await store.verify_password(user, "Wrong-passw0rd")
    assert await store.verify_password(user, STRONG_PASSWORD)
    assert not await store.verify_password(user, "Wrong-passw0rd")
    assert await store.verify_password(user, STRONG_PASSWORD)


@pytest.mark.asyncio
async def test_concurrent_failures_all_count_towards_lockout(session_factory):
    async with session_factory() as session:
        user = await create_alice(make_store(session))

    async with session_factory() as a, session_factory() as b, session_factory() as c:
        results = await asyncio.gather(*(
            make_store(s, max_failed_attempts=3).verify_password(user, "Wrong-passw0rd")
            for s in (a, b, c)
        ))
    assert results == [False, False, False]

    async with session_factory() as session:
        with pytest.raises(AccountLockedError):
            await make_store(session, max_failed_attempts=3).verify_password(user, STRONG_PASSWORD)


@pytest.mark.asyncio
async def test_verify_without_user_is_always_false(store):
    assert await store.verify_password(None, STRONG_PASSWORD) is False


class UnavailableSession:
    """Session stand-in whose database is down."""

    def __init__(self):
        self.rolled_back = False

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionError("connection refused"))

    async def rollback(self):
        self.rolled_back = True


@pytest.mark.asyncio
async def test_storage_failure_is_reported_as_unavailable():
    session = UnavailableSession()
    store = SQLAlchemyCredentialStore(session)

    with pytest.raises(CredentialStoreUnavailable):
        await store.find_by_email("alice@example.com")
    assert session.rolled_back
