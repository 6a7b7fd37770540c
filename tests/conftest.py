"""
Pytest configuration and fixtures for Nitpickr tests.

Provides fixtures for:
- Database session (SQLite via aiosqlite)
- In-memory Redis and the AI/search backend double
- Test users, teams, tiers and listings
- JWT tokens and the HTTP test client
"""

import fnmatch
import os
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from nitpickr.api.files import get_storage
from nitpickr.database import Base, get_db
from nitpickr.infrastructure.ai_backend import AIBackendClient, get_ai_client
from nitpickr.infrastructure.redis import RedisClient
from nitpickr.infrastructure.storage import FileStorageService
from nitpickr.main import app
from nitpickr.middleware.usage import get_redis

# Import all models to ensure they're registered with Base.metadata before create_all()
from nitpickr.models import RealEstate, Role, Team, TeamMember, Tier, User
from nitpickr.security import create_access_token, create_refresh_token, hash_password

# Test database URL (use file-based SQLite for tests to ensure table persistence)
TEST_DATABASE_URL = "sqlite+aiosqlite:///test_db.sqlite"


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands RedisClient uses."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value):
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def incrby(self, key, amount):
        value = int(self.store.get(key, 0)) + amount
        self.store[key] = str(value)
        return value

    async def decrby(self, key, amount):
        return await self.incrby(key, -amount)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None or self.hashes.pop(key, None) is not None:
                removed += 1
        return removed

    async def expire(self, key, ttl):
        self.ttls[key] = ttl
        return key in self.store

    async def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value
        return 1

    async def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def scan_iter(self, match=None):
        for key in list(self.store) + list(self.hashes):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        self.closed = True


class FakeBackend:
    """Routes AI/search backend requests by path to canned responses."""

    def __init__(self):
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def respond(self, path: str, status_code: int = 200, **kwargs) -> None:
        self.routes[path] = lambda request: httpx.Response(status_code, **kwargs)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine."""
    # Remove old test database if exists
    if os.path.exists("test_db.sqlite"):
        os.remove("test_db.sqlite")

    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

    # Clean up test database file
    if os.path.exists("test_db.sqlite"):
        os.remove("test_db.sqlite")


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_client(fake_redis: FakeRedis) -> RedisClient:
    return RedisClient(client=fake_redis)


@pytest.fixture
def ai_backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def ai_client(ai_backend: FakeBackend) -> AsyncGenerator[AIBackendClient, None]:
    client = AIBackendClient(
        ai_url="http://ai.test",
        listings_url="http://listings.test",
        timeout=5,
        transport=httpx.MockTransport(ai_backend.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def storage(tmp_path) -> FileStorageService:
    return FileStorageService(directory=str(tmp_path / "uploads"))


async def _create_user(
    db: AsyncSession,
    email: str,
    name: str,
    password: str,
    is_active: bool = True,
    billing_id: Optional[str] = None,
) -> User:
    user = User(
        email=email,
        name=name,
        hashed_password=hash_password(password),
        is_active=is_active,
        billing_id=billing_id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(test_db: AsyncSession) -> User:
    """Create test user; owner of test_team."""
    return await _create_user(
        test_db, "owner@example.com", "Owner User", "owner12345", billing_id="cus_owner"
    )


@pytest_asyncio.fixture
async def test_member(test_db: AsyncSession) -> User:
    """Create test user; plain member of test_team."""
    return await _create_user(test_db, "member@example.com", "Member User", "member12345")


@pytest_asyncio.fixture
async def test_outsider(test_db: AsyncSession) -> User:
    """Create test user that belongs to no team."""
    return await _create_user(test_db, "outsider@example.com", "Outsider User", "outsider123")


@pytest_asyncio.fixture
async def test_user_inactive(test_db: AsyncSession) -> User:
    """Create inactive test user."""
    return await _create_user(
        test_db, "inactive@example.com", "Inactive User", "inactive123", is_active=False
    )


@pytest_asyncio.fixture
async def test_team(test_db: AsyncSession, test_user: User, test_member: User) -> Team:
    """Create test team with test_user as OWNER and test_member as MEMBER."""
    team = Team(name="Test Team", slug="test-team")
    test_db.add(team)
    await test_db.flush()
    test_db.add_all([
        TeamMember(
            team_id=team.id,
            user_id=test_user.id,
            role=Role.OWNER,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
        TeamMember(
            team_id=team.id,
            user_id=test_member.id,
            role=Role.MEMBER,
            created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        ),
    ])
    await test_db.commit()
    await test_db.refresh(team)
    return team


@pytest_asyncio.fixture
async def test_tiers(test_db: AsyncSession) -> list[Tier]:
    """Create the Basic and Pro tiers."""
    tiers = [
        Tier(
            id="basic-tier",
            name="Basic",
            description="Basic tier",
            features=["1 Team"],
            max_teams=1,
            max_storage=1024,
            max_api_calls=1000,
            price=0,
            limits={"views": 5, "analysis": 1},
        ),
        Tier(
            id="pro-tier",
            name="Pro",
            description="Pro tier",
            features=["5 Teams"],
            max_teams=5,
            max_storage=10240,
            max_api_calls=10000,
            price=2900,
            limits='{"views": 1000, "analysis": 100}',
        ),
    ]
    test_db.add_all(tiers)
    await test_db.commit()
    return tiers


@pytest_asyncio.fixture
async def test_real_estate(test_db: AsyncSession) -> RealEstate:
    """Create test listing."""
    real_estate = RealEstate(
        id="listing-1",
        address="12 Maple Street, Springfield",
        price=425000,
        bedrooms=3,
        bathrooms=2,
        area=1850,
        garage=1,
        lot_size=0.25,
        year_built=1978,
        property_history=[{"date": "2015-06-01", "event": "Sold"}],
        listing_url="https://listings.example.com/1",
        images=["https://img.example.com/1.jpg"],
        geo={"lat": 42.1, "lng": -72.5},
        town="Springfield",
        status="for_sale",
        postal_code="01101",
    )
    test_db.add(real_estate)
    await test_db.commit()
    return real_estate


@pytest.fixture
def access_token(test_user: User) -> str:
    return create_access_token(user_id=test_user.id, email=test_user.email)


@pytest.fixture
def refresh_token(test_user: User) -> str:
    return create_refresh_token(user_id=test_user.id)


@pytest.fixture
def auth_headers(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def member_headers(test_member: User) -> dict:
    token = create_access_token(user_id=test_member.id, email=test_member.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def outsider_headers(test_outsider: User) -> dict:
    token = create_access_token(user_id=test_outsider.id, email=test_outsider.email)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(
    test_db: AsyncSession,
    redis_client: RedisClient,
    ai_client: AIBackendClient,
    storage: FileStorageService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database, Redis, backend and storage overrides."""

    async def override_get_db():
        yield test_db

    async def override_get_redis():
        return redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_ai_client] = lambda: ai_client
    app.dependency_overrides[get_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
