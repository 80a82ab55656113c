"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, SQLite in memory)
- In-memory Redis for the session store
- Test data factories (users with seeded wallets)
- Login helper returning bearer headers
"""
# JWT_SECRET_KEY must be set before importing app: the settings validator
# refuses an empty key when DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import itertools
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import hash_password
from app.core.config import settings
from app.core.validation import EmailValidator
from app.db.database import Base, get_db
from app.db.models.ledger_entry import LedgerEntry
from app.db.models.user import User
from app.db.models.wallet import Wallet
from app.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "correct-horse-battery"

# Note: no custom event_loop fixture; pytest-asyncio handles it with
# asyncio_mode=auto and asyncio_default_fixture_loop_scope=function


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================

# bcrypt is slow on purpose; hash the shared test password once per run
_TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)

_email_counter = itertools.count(1)


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating users together with their wallet"""
    async def _create_user(
        email: str | None = None,
        balance: Decimal | str = Decimal("1000.00"),
        password_hash: str | None = None,
    ) -> User:
        if email is None:
            email = f"user{next(_email_counter)}@example.com"
        user = User(
            email=EmailValidator.normalize(email),
            password_hash=password_hash or _TEST_PASSWORD_HASH,
        )
        db_session.add(user)
        await db_session.flush()
        db_session.add(Wallet(user_id=user.id, balance=Decimal(balance)))
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


async def ledger_entries_for_transfer(db: AsyncSession, transfer_id: str) -> list[LedgerEntry]:
    """Both sides of one transfer, debit first"""
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.transfer_id == transfer_id)
        .order_by(LedgerEntry.id)
    )
    return list(result.scalars().all())


@pytest.fixture
async def alice(user_factory) -> User:
    """Sender with the default starting balance"""
    return await user_factory(email="alice@example.com")


@pytest.fixture
async def bob(user_factory) -> User:
    """Recipient with the default starting balance"""
    return await user_factory(email="bob@example.com")


@pytest.fixture
def login(test_client):
    """Log a user in through the API and return bearer headers"""
    async def _login(email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
        response = await test_client.post(
            "/api/auth/login",
            json={"email": email, "password": password},
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


# ============================================================================
# Redis
# ============================================================================


class FakeRedis:
    """Redis stand-in for tests: in-memory dict with a compatible API and TTL tracking."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def getex(self, key: str, ex: int | None = None) -> str | None:
        """GET and refresh the expiry in one step; a missing key stays missing"""
        value = self._store.get(key)
        if value is not None and ex is not None:
            self._ttls[key] = ex
        return value

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        """SET with EX (expiry in seconds)"""
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)
            self._ttls.pop(key, None)

    def expire_now(self, key: str) -> None:
        """Simulate the TTL running out"""
        self._store.pop(key, None)
        self._ttls.pop(key, None)


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with FakeRedis for every test."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("app.core.redis_client.get_redis", _get_fake_redis), \
         patch("app.core.auth.get_redis", _get_fake_redis):
        yield _fake


# ============================================================================
# Settings
# ============================================================================

_TEST_JWT_SECRET = "test-jwt-secret-key-for-testing-only-do-not-use-in-production"


@pytest.fixture(autouse=True)
def set_test_settings():
    """Pin the settings the tests assert against"""
    with patch.object(settings, "JWT_SECRET_KEY", _TEST_JWT_SECRET), \
         patch.object(settings, "JWT_ALGORITHM", "HS256"), \
         patch.object(settings, "JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 1440), \
         patch.object(settings, "SESSION_TIMEOUT_MINUTES", 15), \
         patch.object(settings, "INITIAL_WALLET_BALANCE", Decimal("1000.00")), \
         patch.object(settings, "PASSWORD_MIN_LENGTH", 8):
        yield


@pytest.fixture(autouse=True)
def reset_auth_rate_limit():
    """Each test starts with an empty auth rate-limit window"""
    from app.core.middleware import AuthRateLimitMiddleware

    stack = app.middleware_stack
    while stack is not None:
        if isinstance(stack, AuthRateLimitMiddleware):
            stack._requests.clear()
            break
        stack = getattr(stack, "app", None)
    yield
