import os

# Configure the process before any authgate module reads the environment
os.environ.setdefault("JWT_SECRET_KEY", "test-signing-secret-for-authgate-0123456789")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from authgate.auth import models  # noqa: F401  registers tables on Base.metadata
from authgate.auth.passwords import BcryptPasswordHasher
from authgate.auth.users import SQLAlchemyCredentialStore
from authgate.base_service import Base, get_db_session
from authgate.config import Settings, get_settings
from authgate.main import app

TEST_SECRET = "test-signing-secret-for-authgate-0123456789"
STRONG_PASSWORD = "Passw0rd!"


@pytest.fixture
def settings():
    return Settings(jwt_secret_key=TEST_SECRET, bcrypt_rounds=4)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'authgate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


def make_store(session, **kwargs) -> SQLAlchemyCredentialStore:
    return SQLAlchemyCredentialStore(session, hasher=BcryptPasswordHasher(rounds=4), **kwargs)


@pytest.fixture
def store(session):
    return make_store(session)


@pytest_asyncio.fixture
async def client(session_factory, settings):
    """HTTP client against the app, wired to the per-test database."""
    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_settings] = lambda: settings
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac
    app.dependency_overrides.clear()


def registration(username: str = "alice", email: str = None, password: str = STRONG_PASSWORD) -> dict:
    return {
        "username": username,
        "email": email or f"{username}@example.com",
        "password": password,
        "firstName": "Alice",
        "lastName": "Liddell",
    }
