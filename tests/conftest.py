"""
Pytest fixtures for credential service tests.
"""

import os

# Configure before any src import reads settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config import Settings, get_settings

get_settings.cache_clear()

from src.kernel.errors import DeliveryError
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.password import PasswordHasher
from src.kernel.identity.repository import SqlAlchemyUserRepository
from src.kernel.identity.tokens import TokenPolicy, TokenPurpose, TokenService
from src.kernel.models.base import Base
from src.kernel.models.user import User, UserRole
from src.kernel.notifications.email import EmailSender

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_KEYS = {
    TokenPurpose.ACCESS: "test-access-secret-key-for-testing-only-000",
    TokenPurpose.EMAIL_VERIFY: "test-verify-secret-key-for-testing-only-111",
    TokenPurpose.PASSWORD_RESET: "test-reset-secret-key-for-testing-only-222",
}

DEFAULT_PASSWORD = "TestPassword123"


class MutableClock:
    """Clock that stands still until a test moves it."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class SentEmail:
    def __init__(self, to: str, subject: str, body: str):
        self.to = to
        self.subject = subject
        self.body = body

    def link_token(self) -> str:
        """Return the token query parameter of the link in the body."""
        url = next(word for word in self.body.split() if word.startswith("http"))
        return parse_qs(urlparse(url).query)["token"][0]


class RecordingEmailSender(EmailSender):
    """Keeps sent emails in memory; set fail=True to simulate an SMTP outage."""

    def __init__(self):
        self.sent: List[SentEmail] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError()
        self.sent.append(SentEmail(to, subject, body))

    def last_to(self, address: str) -> SentEmail:
        return [m for m in self.sent if m.to == address][-1]


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def signing_keys() -> dict:
    return dict(TEST_KEYS)


@pytest.fixture
def token_service(clock: MutableClock, signing_keys: dict) -> TokenService:
    """Token service with test keys and a controllable clock."""
    return TokenService(keys=signing_keys, policy=TokenPolicy(), clock=clock)


@pytest.fixture
def hasher() -> PasswordHasher:
    # Minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def outbox() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def settings() -> Settings:
    return Settings(revoke_tokens_on_password_change=True)


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repository(db_session: AsyncSession) -> SqlAlchemyUserRepository:
    return SqlAlchemyUserRepository(db_session)


@pytest.fixture
def identity_service(
    repository: SqlAlchemyUserRepository,
    token_service: TokenService,
    outbox: RecordingEmailSender,
    hasher: PasswordHasher,
    settings: Settings,
) -> IdentityService:
    return IdentityService(
        repository=repository,
        token_service=token_service,
        email_sender=outbox,
        hasher=hasher,
        settings=settings,
    )


async def make_user(
    repository: SqlAlchemyUserRepository,
    hasher: PasswordHasher,
    email: str = "testuser@example.com",
    password: str = DEFAULT_PASSWORD,
    role: str = UserRole.USER.value,
    email_verified: bool = True,
    is_active: bool = True,
) -> User:
    user = User(
        email=email,
        password_hash=hasher.hash(password),
        first_name="Test",
        last_name="User",
        role=role,
        email_verified=email_verified,
        is_active=is_active,
        token_epoch=0,
    )
    await repository.create(user)
    return user


@pytest.fixture
def user_factory(repository: SqlAlchemyUserRepository, hasher: PasswordHasher):
    """Create users with make_user() defaults overridden per call."""

    async def _create(**kwargs) -> User:
        return await make_user(repository, hasher, **kwargs)

    return _create


@pytest.fixture
def seed_user(session_maker: async_sessionmaker, hasher: PasswordHasher):
    """Create and commit a user in its own session, for tests that go through the app."""

    async def _seed(**kwargs) -> User:
        async with session_maker() as session:
            user = await make_user(SqlAlchemyUserRepository(session), hasher, **kwargs)
            await session.commit()
            return user

    return _seed


@pytest_asyncio.fixture
async def test_user(repository: SqlAlchemyUserRepository, hasher: PasswordHasher) -> User:
    """A verified, active regular user."""
    return await make_user(repository, hasher)


@pytest_asyncio.fixture
async def test_admin(repository: SqlAlchemyUserRepository, hasher: PasswordHasher) -> User:
    """A verified admin user."""
    return await make_user(
        repository,
        hasher,
        email="admin@example.com",
        password="AdminPass123",
        role=UserRole.ADMIN.value,
    )
