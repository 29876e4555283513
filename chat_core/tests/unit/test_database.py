# chat_core/tests/unit/test_database.py
import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from chat_core.infrastructure import models
from chat_core.infrastructure.database import Database, dialect_insert


@pytest.fixture
async def in_memory_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    db = Database(engine=engine)
    yield db
    await engine.dispose()


@pytest.mark.asyncio
async def test_database_connect_creates_tables(in_memory_db):
    await in_memory_db.connect()

    async with in_memory_db.engine.connect() as conn:
        result = await conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'table'")
        )
        tables = set(result.scalars().all())

    assert {
        "users",
        "chats",
        "chat_participants",
        "messages",
        "message_reads",
        "message_deletions",
    } <= tables


@pytest.mark.asyncio
async def test_database_disconnect(in_memory_db):
    await in_memory_db.connect()

    async with in_memory_db.engine.connect() as conn:
        result = await conn.execute(text("SELECT 1"))
        assert result.scalar() == 1

    await in_memory_db.disconnect()
    assert in_memory_db.engine is not None


@pytest.mark.asyncio
async def test_database_session(in_memory_db):
    async for session in in_memory_db.get_session():
        assert isinstance(session, AsyncSession)

    async with in_memory_db.session() as session:
        assert isinstance(session, AsyncSession)


@pytest.mark.asyncio
async def test_dialect_insert_ignores_duplicates(in_memory_db):
    await in_memory_db.connect()

    async with in_memory_db.session() as session:
        stmt = (
            dialect_insert(session, models.User)
            .values(id=1, username="alice")
            .on_conflict_do_nothing(index_elements=["id"])
        )
        first = await session.execute(stmt)
        second = await session.execute(stmt)
        await session.commit()

    assert first.rowcount == 1
    assert second.rowcount == 0
