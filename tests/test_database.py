"""
Tests for salonbooker/database.py - engine options and session helpers.
"""
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from salonbooker import database
from salonbooker.database import dispose_engine, engine_options, get_db, session_scope
from salonbooker.models import Salon


class TestEngineOptions:
    def test_postgres_gets_pool_settings(self):
        options = engine_options(
            "postgresql+asyncpg://app:pw@db:5432/salonbooker", pool_size=20, max_overflow=10,
        )
        assert options == {"echo": False, "pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}

    def test_sqlite_has_no_pool_settings(self):
        options = engine_options("sqlite+aiosqlite:///./local.db", pool_size=20, max_overflow=10, echo=True)
        assert options == {"echo": True}


# ---------------------------------------------------------------------------
# session_scope / get_db
# ---------------------------------------------------------------------------


class TestSessions:
    @pytest.mark.asyncio
    async def test_session_scope_rolls_back_on_error(self, db, session_factory):
        with patch("salonbooker.database.get_session_factory", return_value=session_factory):
            with pytest.raises(RuntimeError):
                async with session_scope() as session:
                    session.add(Salon(name="Half written"))
                    await session.flush()
                    raise RuntimeError("producer failed")

        count = (await db.execute(select(func.count(Salon.id)))).scalar()
        assert count == 0

    @pytest.mark.asyncio
    async def test_get_db_commits_when_route_returns(self, db, session_factory):
        salon_id = uuid.uuid4()
        with patch("salonbooker.database.get_session_factory", return_value=session_factory):
            dependency = get_db()
            session = await dependency.__anext__()
            session.add(Salon(id=salon_id, name="Studio Süd"))
            with pytest.raises(StopAsyncIteration):
                await dependency.__anext__()

        assert await db.get(Salon, salon_id) is not None


class TestDisposeEngine:
    @pytest.mark.asyncio
    async def test_disposes_and_resets(self):
        engine = AsyncMock()
        with (
            patch.object(database, "_engine", engine),
            patch.object(database, "_session_factory", object()),
        ):
            await dispose_engine()
            assert database._engine is None
            assert database._session_factory is None

        engine.dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_noop_without_engine(self):
        with patch.object(database, "_engine", None):
            await dispose_engine()
