"""
Централизованная конфигурация pytest для всех тестов
Использует SQLite в памяти (aiosqlite) со схемой из Base.metadata
"""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import jwt
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from db import Base, get_db
from db.models import Profile, Gig, Demand
from dependencies import get_feed
from dependencies.settings import get_settings
from main import app
from services.realtime import InMemoryChangeFeed
from settings import Settings

# Тестовая БД
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_JWT_SECRET = "test-jwt-secret-for-rizq-api"


@pytest.fixture
async def db_engine():
    """
    Создает async engine для тестовой БД
    StaticPool: все сессии работают с одной in-memory базой
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Создает новую сессию БД для каждого теста"""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


@pytest.fixture
def feed():
    """In-process лента изменений"""
    return InMemoryChangeFeed()


@pytest.fixture
async def market(test_db):
    """
    Заполняет профили и позиции:
        alice: gig-alice (100), demand-alice (80)
        bob:   gig-bob (300), demand-bob (250)
        carol: без позиций
        ghost: gig-ghost, профиля нет
    """
    test_db.add_all([
        Profile(id="alice", full_name="Alice Smith", username="alice", avatar_url="https://cdn.test/alice.png"),
        Profile(id="bob", full_name="Bob Jones", username="bob", company_name="Bob & Co"),
        Profile(id="carol", full_name="Carol White", username="carol"),
        Gig(id="gig-alice", user_id="alice", title="Logo design", description="Vector logo", category="design", price=Decimal("100.00")),
        Gig(id="gig-bob", user_id="bob", title="Backend API", description="FastAPI services", category="development", price=Decimal("300.00")),
        Gig(id="gig-ghost", user_id="ghost", title="Mystery work", category="other", price=Decimal("10.00")),
        Demand(id="demand-alice", user_id="alice", title="Need a copywriter", category="writing", budget=Decimal("80.00")),
        Demand(id="demand-bob", user_id="bob", title="Need a logo", description="Logo for a bakery", category="design", budget=Decimal("250.00")),
    ])
    await test_db.commit()
    return test_db


@pytest.fixture
def test_settings():
    return Settings(jwt_secret=SecretStr(TEST_JWT_SECRET), realtime_backend="memory")


@pytest.fixture
def make_token():
    """Фабрика bearer токенов, как их выдает платформа авторизации"""
    def _make(user_id: str, expires_in: int = 3600, secret: str = TEST_JWT_SECRET) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        }
        return jwt.encode(payload, secret, algorithm="HS256")
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers


@pytest.fixture
async def test_client(test_db, feed, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """Создает тестовый HTTP клиент с переопределенной БД, настройками и лентой"""
    async def override_get_db():
        yield test_db

    async def override_get_settings():
        return test_settings

    async def override_get_feed():
        return feed

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_feed] = override_get_feed

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
