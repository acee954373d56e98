"""Pytest configuration and fixtures."""

import os
import uuid
from typing import AsyncGenerator, Awaitable, Callable, Optional
from unittest.mock import AsyncMock

# Keep the module-level engine off the production database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tracker.constants import GRANT_DIRECT, GROUP_BLESS, GROUP_MEMBERSHIP, SYSTEM_GROUPS
from tracker.core.permissions import UserPermissions
from tracker.core.security import create_access_token, hash_password
from tracker.database import Base, get_db
from tracker.main import app
from tracker.models.group import Group, GroupGroupMap, UserGroupMap
from tracker.models.user import User
from tracker.redis import TokenBlacklist, get_redis
from tracker.services.setting import SettingService


# Test database URL (in-memory SQLite for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "TestPass123!"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def mock_redis():
    """
    Create a mock Redis client.

    Sessions always exist and no token is blacklisted, so any token made
    with `create_access_token` authenticates.
    """

    async def exists(*keys):
        return sum(0 if key.startswith(TokenBlacklist.PREFIX) else 1 for key in keys)

    mock = AsyncMock()
    mock.ping = AsyncMock(return_value=True)
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.exists = AsyncMock(side_effect=exists)
    mock.hset = AsyncMock(return_value=1)
    mock.hgetall = AsyncMock(return_value={})
    mock.expire = AsyncMock(return_value=True)
    mock.sadd = AsyncMock(return_value=1)
    mock.srem = AsyncMock(return_value=1)
    mock.smembers = AsyncMock(return_value=set())
    return mock


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, mock_redis) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# Fixture factories for creating test data
@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory for users, optionally mapped directly into groups."""

    async def _make_user(
        login: str,
        realname: str = "",
        password: Optional[str] = TEST_PASSWORD,
        groups: tuple[Group, ...] = (),
        bless: tuple[Group, ...] = (),
        **fields,
    ) -> User:
        user = User(
            login_name=login,
            realname=realname,
            cryptpassword=hash_password(password) if password else None,
            **fields,
        )
        db_session.add(user)
        await db_session.flush()
        for group in groups:
            db_session.add(
                UserGroupMap(user_id=user.id, group_id=group.id, isbless=False, grant_type=GRANT_DIRECT)
            )
        for group in bless:
            db_session.add(
                UserGroupMap(user_id=user.id, group_id=group.id, isbless=True, grant_type=GRANT_DIRECT)
            )
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_group(db_session: AsyncSession) -> Callable[..., Awaitable[Group]]:
    """Factory for groups."""

    async def _make_group(name: str, userregexp: str = "", **fields) -> Group:
        group = Group(
            name=name,
            description=fields.pop("description", f"{name} group"),
            userregexp=userregexp,
            **fields,
        )
        db_session.add(group)
        await db_session.commit()
        await db_session.refresh(group)
        return group

    return _make_group


async def grant(
    db: AsyncSession, member: Group, grantor: Group, grant_type: int = GROUP_MEMBERSHIP
) -> None:
    """Give the members of `member` the `grant_type` right on `grantor`."""
    db.add(GroupGroupMap(member_id=member.id, grantor_id=grantor.id, grant_type=grant_type))
    await db.commit()


@pytest_asyncio.fixture
async def system_groups(db_session: AsyncSession, make_group) -> dict[str, Group]:
    """The system groups; admin members are members of and may bless each one."""
    groups = {}
    for name in SYSTEM_GROUPS:
        groups[name] = await make_group(name, isbuggroup=False)
    admin = groups["admin"]
    for name, group in groups.items():
        if name != "admin":
            await grant(db_session, admin, group, GROUP_MEMBERSHIP)
        await grant(db_session, admin, group, GROUP_BLESS)
    return groups


@pytest_asyncio.fixture
async def site_settings(db_session: AsyncSession) -> None:
    """The default user preferences."""
    await SettingService(db_session).install_defaults()
    await db_session.commit()


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    """Create a test user."""
    return await make_user("test@example.com", realname="Test User")


@pytest_asyncio.fixture
async def test_admin(make_user, system_groups: dict[str, Group]) -> User:
    """Create a test admin user."""
    return await make_user(
        "admin@example.com",
        realname="Site Admin",
        password="AdminPass123!",
        groups=(system_groups["admin"],),
    )


def permissions_for(db: AsyncSession, user: Optional[User]) -> UserPermissions:
    """Permission view of a user without the Redis cache."""
    return UserPermissions(db, user)


def token_for(user: User) -> str:
    """Create a JWT access token for a user."""
    return create_access_token(user_id=user.id, session_id=str(uuid.uuid4()))


@pytest.fixture
def user_token(test_user: User) -> str:
    """Create a JWT token for the test user."""
    return token_for(test_user)


@pytest.fixture
def admin_token(test_admin: User) -> str:
    """Create a JWT token for the test admin."""
    return token_for(test_admin)


def auth_header(token: str) -> dict[str, str]:
    """Create an authorization header with the given token."""
    return {"Authorization": f"Bearer {token}"}
