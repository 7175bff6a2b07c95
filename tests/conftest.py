"""
Shared fixtures: an in-memory SQLite database per test and an AsyncMock Redis.
"""
import uuid
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Chair, PaymentToken, User
from app.services.payment import PaymentGatewayClient


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    mock_redis = AsyncMock()
    mock_redis.set = AsyncMock(return_value=True)   # every lock is free
    mock_redis.get = AsyncMock(return_value=None)   # no cached idempotent responses
    return mock_redis


@pytest.fixture
def make_user(db):
    async def _make(username: str | None = None, payment_token: str | None = None, **kwargs) -> User:
        user = User(
            id=str(uuid.uuid4()),
            username=username or f"rider-{uuid.uuid4().hex[:8]}",
            firstname="Hanako",
            lastname="Suzuki",
            date_of_birth="2000-01-01",
            invitation_code=uuid.uuid4().hex[:30],
            **kwargs,
        )
        db.add(user)
        await db.flush()
        if payment_token:
            db.add(PaymentToken(user_id=user.id, token=payment_token))
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_chair(db):
    async def _make(speed: int = 2, latitude: int | None = 0, longitude: int | None = 0, is_active: bool = True) -> Chair:
        chair = Chair(
            id=str(uuid.uuid4()),
            owner_id="owner-test-001",
            name=f"chair-{uuid.uuid4().hex[:6]}",
            model="Standard",
            speed=speed,
            is_active=is_active,
            latitude=latitude,
            longitude=longitude,
        )
        db.add(chair)
        await db.commit()
        return chair

    return _make


class FakeGateway:
    """Scripted payment gateway: answers POST /payments with the given statuses in turn."""

    def __init__(self, post_statuses=(204,), recorded_payments=None):
        self.post_statuses = list(post_statuses)
        self.recorded_payments = recorded_payments if recorded_payments is not None else []
        self.posts: list[httpx.Request] = []
        self.gets: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.posts.append(request)
            status = self.post_statuses[min(len(self.posts), len(self.post_statuses)) - 1]
            return httpx.Response(status)
        self.gets.append(request)
        return httpx.Response(200, json=self.recorded_payments)

    def client(self, base_url: str = "http://gateway.test", token: str = "tok-test") -> PaymentGatewayClient:
        return PaymentGatewayClient(
            base_url,
            token,
            retry_backoff_ms=0,
            transport=httpx.MockTransport(self.handler),
        )

    def factory(self, base_url: str, token: str) -> PaymentGatewayClient:
        return self.client(base_url, token)


@pytest.fixture
def gateway():
    return FakeGateway()
