"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from src.bus.memory import InMemoryMessageBus
from src.db.turso import TursoClient
from src.main import app, initialize_pipeline
from src.outbox.store import OutboxStore


class FakeConnection:
    """LiveConnection that records the frames pushed to it."""

    def __init__(self, connection_id: str, fail: bool = False, is_open: bool = True):
        self.connection_id = connection_id
        self.is_open = is_open
        self.fail = fail
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("broken pipe")
        self.sent.append(data)

    def __repr__(self) -> str:
        return f"FakeConnection({self.connection_id})"


@pytest.fixture
def make_connection():
    """Factory for fake live connections."""
    return FakeConnection


@pytest.fixture
async def db(tmp_path: Path) -> AsyncIterator[TursoClient]:
    """Temp file database client."""
    client = TursoClient(url=f"file:{tmp_path / 'test.db'}")
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
async def outbox_store(db: TursoClient) -> OutboxStore:
    """OutboxStore with its schema created."""
    store = OutboxStore(db)
    await store.init_schema()
    return store


@pytest.fixture
async def bus() -> AsyncIterator[InMemoryMessageBus]:
    """Running in-process message bus."""
    message_bus = InMemoryMessageBus()
    await message_bus.start()
    yield message_bus
    await message_bus.stop()


@pytest.fixture
async def client(tmp_path: Path) -> AsyncIterator[AsyncClient]:
    """Create async test client for FastAPI app with database and bus."""
    db_path = tmp_path / "test_api.db"
    db = TursoClient(url=f"file:{db_path}")
    await db.connect()

    message_bus = InMemoryMessageBus()
    app.state.db = db
    app.state.bus = message_bus
    await initialize_pipeline(app, db, message_bus)
    await message_bus.start()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup
    await message_bus.stop()
    await db.close()
    for name in list(app.state._state):
        delattr(app.state, name)
