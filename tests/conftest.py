"""Pytest configuration and shared fixtures."""
import os
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

# Settings and the database engine are created at import time, so point them
# at throwaway locations before anything from live_poll is imported.
_TMP = Path(tempfile.mkdtemp(prefix="live_poll_tests_"))
os.environ.setdefault("LIVEPOLL_DATABASE_URL", f"sqlite+aiosqlite:///{_TMP / 'live_poll.db'}")
os.environ.setdefault("LIVEPOLL_LOG_DIR", str(_TMP / "logs"))
os.environ.setdefault("LIVEPOLL_JWT_SECRET_KEY", "test-secret-key-with-enough-length-123456")

from live_poll.schemas.session import SessionConfig  # noqa: E402
from live_poll.services.connections import ConnectionRegistry  # noqa: E402
from live_poll.services.coordinator import SessionCoordinator  # noqa: E402
from live_poll.services.outbox import Outbox  # noqa: E402
from live_poll.services.session_registry import SessionRegistry  # noqa: E402
from live_poll.services.timers import TimerService  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeClient:
    """Stands in for a socket: owns an outbox queue and drains it on demand."""

    def __init__(self, outbox: Outbox, connection_id: str):
        self.id = connection_id
        self.queue = outbox.open(connection_id)

    def drain(self) -> list:
        deliveries = []
        while not self.queue.empty():
            deliveries.append(self.queue.get_nowait())
        return deliveries

    def messages(self) -> list:
        return [delivery.message for delivery in self.drain()]

    def types(self) -> list:
        return [message.type for message in self.messages()]


@pytest.fixture
async def live(anyio_backend):
    """A coordinator wired to in-memory registries, with no transport or store."""
    timers = TimerService()
    sessions = SessionRegistry(timers)
    connections = ConnectionRegistry()
    outbox = Outbox()
    coordinator = SessionCoordinator(sessions, connections, timers, outbox)
    clients = {}

    def client(connection_id: str) -> FakeClient:
        clients[connection_id] = FakeClient(outbox, connection_id)
        return clients[connection_id]

    def new_session(**overrides) -> str:
        config = {"title": "Geography", "max_participants": 50}
        config.update(overrides)
        return sessions.create(SessionConfig(**config))

    yield SimpleNamespace(
        timers=timers,
        sessions=sessions,
        connections=connections,
        outbox=outbox,
        coordinator=coordinator,
        clients=clients,
        client=client,
        new_session=new_session,
    )
    await timers.shutdown()


@pytest.fixture
def poll_data():
    from live_poll.schemas.session import PollTemplate

    return PollTemplate(
        question="What is the capital of France?",
        options=["Paris", "London"],
        correct_option_index=0,
        duration_seconds=30,
    )


@pytest.fixture
def client():
    """The full application, with its lifespan running."""
    from fastapi.testclient import TestClient

    from live_poll.main import app

    with TestClient(app) as test_client:
        yield test_client
