from dataclasses import dataclass

from starlette.requests import HTTPConnection

from live_poll.core.config import Settings
from live_poll.core.security import authenticate_token
from live_poll.db import get_session
from live_poll.services.connections import ConnectionRegistry
from live_poll.services.coordinator import SessionCoordinator
from live_poll.services.outbox import Outbox
from live_poll.services.session_registry import SessionRegistry
from live_poll.services.store import QuizStore
from live_poll.services.timers import TimerService


@dataclass
class Runtime:
    """Everything a running process shares between requests and sockets."""

    timers: TimerService
    sessions: SessionRegistry
    connections: ConnectionRegistry
    outbox: Outbox
    coordinator: SessionCoordinator
    store: QuizStore


def build_runtime(config: Settings) -> Runtime:
    timers = TimerService()
    sessions = SessionRegistry(timers, code_length=config.code_length)
    connections = ConnectionRegistry()
    outbox = Outbox(max_queue=config.outbox_queue_size)
    coordinator = SessionCoordinator(
        sessions,
        connections,
        timers,
        outbox,
        authenticate=authenticate_token,
        teacher_grace_seconds=config.teacher_grace_seconds,
        default_poll_duration=config.default_poll_duration,
    )
    store = QuizStore(get_session)
    coordinator.results_listeners.append(store.archive_results)
    return Runtime(
        timers=timers,
        sessions=sessions,
        connections=connections,
        outbox=outbox,
        coordinator=coordinator,
        store=store,
    )


def get_runtime(conn: HTTPConnection) -> Runtime:
    return conn.app.state.runtime
