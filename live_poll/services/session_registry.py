import asyncio
import logging
import secrets
import string
import threading
from typing import Dict, List, Optional

from live_poll.core.errors import InvalidSessionConfig, SessionNotFound
from live_poll.schemas.session import (
    ChatMessage,
    Participant,
    Poll,
    PollState,
    PollTemplate,
    RosterEntry,
    SessionConfig,
)
from live_poll.services.timers import TimerService, poll_timer_key, teardown_timer_key

CODE_ALPHABET = string.ascii_uppercase + string.digits


class Session:
    """In-memory holder for one live quiz: roster, current poll, chat and poll bank.

    Every read or write of the mutable fields happens under ``lock``.
    """

    def __init__(self, code: str, config: SessionConfig):
        self.code = code
        self.title = config.title
        self.description = config.description
        self.max_participants = config.max_participants
        self.allow_late_join = config.allow_late_join
        self.owner_id = config.owner_id
        self.teacher_connection: Optional[str] = None
        self.participants: Dict[str, Participant] = {}
        self.current_poll: Optional[Poll] = None
        self.poll_bank: List[PollTemplate] = []
        self.chat_log: List[ChatMessage] = []
        self.polls_asked = 0
        self.active = True
        self.lock = asyncio.Lock()

    @property
    def poll_active(self) -> bool:
        return self.current_poll is not None and self.current_poll.state == PollState.ACTIVE

    def connections(self) -> List[str]:
        """Teacher first, then students in join order."""
        targets = list(self.participants)
        if self.teacher_connection:
            targets.insert(0, self.teacher_connection)
        return targets

    def roster(self) -> List[RosterEntry]:
        return [
            RosterEntry(
                connection_id=p.connection_id,
                display_name=p.display_name,
                joined_at=p.joined_at,
                has_answered=p.has_answered_current_poll,
                score=p.score,
                total_answered=p.total_answered,
            )
            for p in self.participants.values()
        ]

    def add_participant(self, connection_id: str, display_name: str) -> Participant:
        participant = Participant(connection_id=connection_id, display_name=display_name)
        self.participants[connection_id] = participant
        return participant

    def remove_participant(self, connection_id: str) -> Optional[Participant]:
        participant = self.participants.pop(connection_id, None)
        if participant and self.poll_active:
            # Only current participants have answers counted
            self.current_poll.answers.pop(connection_id, None)
        return participant

    def append_chat(self, message: ChatMessage) -> ChatMessage:
        self.chat_log.append(message)
        return message

    def save_template(self, template: PollTemplate) -> int:
        self.poll_bank.append(template)
        return len(self.poll_bank) - 1


class SessionRegistry:
    """Live sessions keyed by their human-typeable code."""

    def __init__(self, timers: TimerService, code_length: int = 6):
        self.logger = logging.getLogger("engine")
        self.timers = timers
        self.code_length = code_length
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def _new_code(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.code_length))

    def create(self, config: SessionConfig) -> str:
        if not config.title or not config.title.strip():
            raise InvalidSessionConfig()
        with self._lock:
            code = self._new_code()
            while code in self._sessions:
                code = self._new_code()
            self._sessions[code] = Session(code, config)
        self.logger.info(
            "Session created code=%s title=%r max_participants=%s owner=%s",
            code,
            config.title,
            config.max_participants,
            config.owner_id,
        )
        return code

    def find(self, code: Optional[str]) -> Optional[Session]:
        if not code:
            return None
        with self._lock:
            return self._sessions.get(code.strip().upper())

    def get(self, code: Optional[str]) -> Session:
        session = self.find(code)
        if not session:
            raise SessionNotFound()
        return session

    def remove(self, code: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.pop(code.strip().upper(), None)
        if session:
            session.active = False
            self.timers.cancel(poll_timer_key(session.code))
            self.timers.cancel(teardown_timer_key(session.code))
            self.logger.info("Session removed code=%s", session.code)
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
