"""
Test configuration and fixtures.
Uses a per-test SQLite file so the delivery worker's own sessions see the
rows seeded through the `db` fixture. Mocks all external services.
"""
import os

os.environ.setdefault("APP_SECRET_KEY", "test-app-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SESSION_JWT_SECRET", "test-session-secret")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from salonbooker.database import Base
from salonbooker.models import Salon, Staff


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Session for seeding and assertions. Commit before handing off to the worker."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def mock_heartbeat():
    """Keeps the delivery worker away from Redis."""
    with patch(
        "salonbooker.workers.webhook_delivery.record_heartbeat",
        new_callable=AsyncMock,
    ) as mock:
        yield mock


@pytest.fixture
def mock_redis():
    """Mock for async Redis used by the readiness check."""
    with patch("salonbooker.utils.redis_client.get_redis", new_callable=AsyncMock) as mock:
        redis_mock = AsyncMock()
        redis_mock.ping = AsyncMock(return_value=True)
        redis_mock.get = AsyncMock(return_value=None)
        redis_mock.set = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock


@pytest.fixture
async def salon(db):
    salon = Salon(name="Studio Nord")
    db.add(salon)
    await db.commit()
    return salon


@pytest.fixture
async def other_salon(db):
    salon = Salon(name="Studio Sud")
    db.add(salon)
    await db.commit()
    return salon


@pytest.fixture
async def admin(db, salon):
    staff = Staff(salon_id=salon.id, email="owner@nord.example", name="Owner", role="admin")
    db.add(staff)
    await db.commit()
    return staff


@pytest.fixture
async def stylist(db, salon):
    staff = Staff(salon_id=salon.id, email="stylist@nord.example", name="Stylist", role="staff")
    db.add(staff)
    await db.commit()
    return staff
