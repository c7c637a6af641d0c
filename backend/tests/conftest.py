"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from chatwave.config import (
    AppConfig,
    RoomSeedSettings,
    StorageSettings,
    reset_config,
    set_config,
)
from chatwave.main import app
from chatwave.services import reset_services
from chatwave.storage.database import ChatDatabase


@pytest.fixture(autouse=True)
def in_memory_chat():
    """Run every test against an in-memory DuckDB and empty presence state.

    Default rooms are seeded; welcome messages are not, so room history starts
    empty unless a test writes to it.
    """
    reset_services()
    ChatDatabase.reset_instance()
    set_config(AppConfig(
        storage=StorageSettings(db_path=":memory:"),
        rooms=RoomSeedSettings(seed_defaults=True, seed_welcome_messages=False),
    ))
    ChatDatabase.get_instance(db_path=":memory:")
    yield
    reset_services()
    ChatDatabase.reset_instance()
    reset_config()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app."""
    return TestClient(app)


class FakeWebSocket:
    """Stand-in for a WebSocket that records every frame sent to it.

    Args:
        name: Label written to the shared delivery log.
        log: Optional list shared between sockets to record global order.
        fail: Raise on send, like a socket whose client has gone away.
    """

    def __init__(self, name: str = "", log: list = None, fail: bool = False) -> None:
        self.name = name
        self.log = log
        self.fail = fail
        self.frames = []

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError("WebSocket is not connected")
        self.frames.append(data)
        if self.log is not None:
            self.log.append((self.name, data))
