"""Pytest configuration and shared fixtures for all tests"""
import json
import pytest
from unittest.mock import AsyncMock

from database.chat_database import ChatDatabase
from database.message_store import MessageStore
from database.notification_store import NotificationStore
from events.router import EventRouter
from websocket.connection_manager import ConnectionManager


@pytest.fixture
async def in_memory_db():
    """Create an in-memory SQLite database for testing"""
    db = ChatDatabase(":memory:")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
async def message_store(in_memory_db):
    return MessageStore(in_memory_db)


@pytest.fixture
async def notification_store(in_memory_db):
    return NotificationStore(in_memory_db)


@pytest.fixture
def connection_manager():
    """Create a ConnectionManager instance for testing"""
    return ConnectionManager()


@pytest.fixture
async def router(in_memory_db, connection_manager, tmp_path):
    """EventRouter writing uploads below tmp_path"""
    router = EventRouter(in_memory_db, connection_manager, tmp_path / "uploads")
    router.startup()
    yield router
    await router.shutdown()


@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket for testing"""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    return ws


@pytest.fixture
def make_connection(connection_manager):
    """Factory for accepted connections backed by mock websockets"""
    async def _make():
        return await connection_manager.connect(AsyncMock())
    return _make


@pytest.fixture
def emitted():
    """Frames sent to a connection, optionally filtered by event name"""
    def _emitted(connection, event: str | None = None) -> list[dict]:
        frames = [json.loads(call.args[0]) for call in connection.websocket.send_text.call_args_list]
        return [frame for frame in frames if event is None or frame["event"] == event]
    return _emitted
