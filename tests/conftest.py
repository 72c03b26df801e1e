import asyncio
import time
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from app.database import init_db
from app.schemas.message import ChatType, InboundMessage


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def run_db():
    """Run ``fn(session_factory)`` against a fresh in-memory database."""

    def _run(fn):
        async def _main():
            engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
            await init_db(engine)
            session_factory = async_sessionmaker(engine, expire_on_commit=False)
            try:
                return await fn(session_factory)
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return _run


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed database usable from any event loop (TestClient runs its own)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    yield async_sessionmaker(engine, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def make_message():
    def _make(text="سلام", **overrides):
        fields = {
            "user_id": 42,
            "chat_id": 42,
            "chat_type": ChatType.PRIVATE,
            "text": text,
            "timestamp_ms": int(time.time() * 1000),
            "message_id": 7,
            "first_name": "Sara",
        }
        fields.update(overrides)
        return InboundMessage(**fields)

    return _make


@pytest.fixture
def group_message(make_message):
    def _make(text="سلام", **overrides):
        fields = {"chat_id": -100500, "chat_type": ChatType.GROUP, "chat_title": "Fans"}
        fields.update(overrides)
        return make_message(text, **fields)

    return _make


@pytest.fixture
def mock_events():
    events = Mock()
    events.emit = AsyncMock(return_value={})
    return events


@pytest.fixture
def mock_triage():
    triage = Mock()
    triage.record_unanswered = AsyncMock(return_value=True)
    triage.record_false_positive = AsyncMock()
    return triage
