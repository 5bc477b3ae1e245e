import logging
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel

from live_poll.core.errors import (
    InvalidMessage,
    NoActivePoll,
    NotFound,
    QuizError,
    QuizInactive,
    SessionFull,
    SessionNotFound,
    Unauthorized,
)
from live_poll.core.security import TeacherIdentity
from live_poll.core.time import utc_now
from live_poll.schemas.messages import (
    AnswerAcknowledged,
    AnswerCount,
    AskSavedPoll,
    ChatBroadcast,
    CreatePoll,
    EndPoll,
    ErrorMessage,
    JoinAsStudent,
    JoinAsTeacher,
    Kick,
    PollBankUpdated,
    PollResults,
    PollStarted,
    RemovedFromSession,
    RosterUpdated,
    SavePoll,
    SendChat,
    SessionClosed,
    SessionJoined,
    SubmitAnswer,
    TeacherDisconnected,
    TeacherLeft,
    TeacherReturned,
)
from live_poll.schemas.session import ChatMessage, Poll, PollTemplate, ResultsSnapshot, Role
from live_poll.services.connections import Binding, ConnectionRegistry
from live_poll.services.outbox import Delivery, Outbox
from live_poll.services.poll_engine import PollEngine, clean_poll
from live_poll.services.session_registry import Session, SessionRegistry
from live_poll.services.timers import TimerService, teardown_timer_key

Authenticator = Callable[[Optional[str]], Optional[TeacherIdentity]]
ResultsListener = Callable[[str, ResultsSnapshot], Awaitable[None]]


class SessionCoordinator:
    """Turns participant actions into session mutations and outbound deliveries.

    Every handler resolves the caller's session, mutates it under the
    session's lock, hands the resulting deliveries to the outbox and returns
    them. Expected failures are raised as ``QuizError``; ``handle`` turns
    them into an ``error`` message for the caller.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        connections: ConnectionRegistry,
        timers: TimerService,
        outbox: Outbox,
        authenticate: Optional[Authenticator] = None,
        teacher_grace_seconds: float = 0,
        default_poll_duration: int = 60,
        clock=utc_now,
    ):
        self.logger = logging.getLogger("engine")
        self.sessions = sessions
        self.connections = connections
        self.timers = timers
        self.outbox = outbox
        self.authenticate = authenticate
        self.teacher_grace_seconds = teacher_grace_seconds
        self.default_poll_duration = default_poll_duration
        self.clock = clock
        self.engine = PollEngine(timers, on_timeout=self.on_poll_timeout, clock=clock)
        self.results_listeners: List[ResultsListener] = []

    # Dispatch

    async def handle(self, connection_id: str, action: BaseModel) -> List[Delivery]:
        try:
            if isinstance(action, JoinAsTeacher):
                return await self.on_teacher_join(connection_id, action.code, action.token)
            if isinstance(action, JoinAsStudent):
                return await self.on_student_join(connection_id, action.code, action.display_name)
            if isinstance(action, SavePoll):
                return await self.on_save_poll(connection_id, action.template(self.default_poll_duration))
            if isinstance(action, CreatePoll):
                return await self.on_create_poll(connection_id, action.template(self.default_poll_duration))
            if isinstance(action, AskSavedPoll):
                return await self.on_ask_saved_poll(connection_id, action.index)
            if isinstance(action, SubmitAnswer):
                return await self.on_submit_answer(connection_id, action.option_index)
            if isinstance(action, EndPoll):
                return await self.on_end_poll(connection_id)
            if isinstance(action, Kick):
                return await self.on_kick(connection_id, action.target_connection_id)
            if isinstance(action, SendChat):
                return await self.on_chat_message(connection_id, action.text)
            raise InvalidMessage(f"Unsupported action {getattr(action, 'type', None)!r}")
        except QuizError as exc:
            self.logger.info(
                "Action rejected connection=%s action=%s kind=%s message=%s",
                connection_id,
                getattr(action, "type", None),
                exc.kind,
                exc.message,
            )
            return self.reject(connection_id, exc)

    def reject(self, connection_id: str, exc: QuizError) -> List[Delivery]:
        return self._emit([Delivery(connection_id, ErrorMessage(kind=exc.kind, message=exc.message))])

    # Joining

    async def on_teacher_join(self, connection_id: str, code: str, token: Optional[str] = None) -> List[Delivery]:
        self._ensure_unbound(connection_id)
        session = self.sessions.get(code)
        identity = self.authenticate(token) if self.authenticate else None
        async with session.lock:
            self._ensure_live(session)
            if session.owner_id and (identity is None or identity.id != session.owner_id):
                raise Unauthorized("This quiz belongs to another teacher")
            returning = self.timers.cancel(teardown_timer_key(session.code))
            previous = session.teacher_connection
            session.teacher_connection = connection_id
            self.connections.bind(
                connection_id, Role.TEACHER, session.code, identity.name if identity else "Teacher"
            )
            deliveries = []
            if previous and previous != connection_id:
                self.connections.unbind(previous)
                deliveries.append(
                    Delivery(previous, RemovedFromSession(code=session.code, reason="replaced"), disconnect=True)
                )
            deliveries.append(Delivery(connection_id, self._joined(session, Role.TEACHER, connection_id)))
            if returning:
                deliveries.extend(Delivery(target, TeacherReturned()) for target in session.participants)
            self.logger.info(
                "Teacher joined session=%s connection=%s replaced=%s returning=%s",
                session.code,
                connection_id,
                previous,
                returning,
            )
            return self._emit(deliveries)

    async def on_student_join(self, connection_id: str, code: str, display_name: str) -> List[Delivery]:
        name = (display_name or "").strip()
        if not name:
            raise InvalidMessage("Display name is required")
        self._ensure_unbound(connection_id)
        session = self.sessions.get(code)
        async with session.lock:
            self.check_can_join(session)
            session.add_participant(connection_id, name)
            self.connections.bind(connection_id, Role.STUDENT, session.code, name)
            deliveries = [Delivery(connection_id, self._joined(session, Role.STUDENT, connection_id))]
            if session.teacher_connection:
                deliveries.append(Delivery(session.teacher_connection, RosterUpdated(roster=session.roster())))
            self.logger.info(
                "Student joined session=%s connection=%s name=%r participants=%s/%s",
                session.code,
                connection_id,
                name,
                len(session.participants),
                session.max_participants,
            )
            return self._emit(deliveries)

    def check_can_join(self, session: Session) -> None:
        """Raise unless a new student may join ``session``; caller holds the lock."""
        if not session.active:
            raise QuizInactive("This quiz is no longer active")
        if len(session.participants) >= session.max_participants:
            raise SessionFull()
        if not session.allow_late_join and session.polls_asked > 0:
            raise QuizInactive("This quiz has already started")

    # Polls

    async def on_create_poll(self, connection_id: str, template: PollTemplate) -> List[Delivery]:
        session = self._teacher_session(connection_id)
        async with session.lock:
            self._ensure_teacher(session, connection_id)
            poll = self.engine.start(
                session,
                template.question,
                template.options,
                template.correct_option_index,
                template.duration_seconds,
            )
            return self._emit(self._poll_started(session, poll))

    async def on_ask_saved_poll(self, connection_id: str, index: int) -> List[Delivery]:
        session = self._teacher_session(connection_id)
        async with session.lock:
            self._ensure_teacher(session, connection_id)
            poll = self.engine.start_from_template(session, index)
            return self._emit(self._poll_started(session, poll))

    async def on_save_poll(self, connection_id: str, template: PollTemplate) -> List[Delivery]:
        session = self._teacher_session(connection_id)
        async with session.lock:
            self._ensure_teacher(session, connection_id)
            cleaned = clean_poll(
                template.question,
                template.options,
                template.correct_option_index,
                template.duration_seconds,
            )
            index = session.save_template(cleaned)
            self.logger.info("Poll saved session=%s index=%s", session.code, index)
            return self._emit([Delivery(connection_id, PollBankUpdated(poll_bank=list(session.poll_bank)))])

    async def on_submit_answer(self, connection_id: str, option_index: int) -> List[Delivery]:
        binding = self._binding(connection_id)
        if binding.role != Role.STUDENT:
            raise Unauthorized("Only students can answer polls")
        session = self.sessions.get(binding.session_code)
        async with session.lock:
            self._ensure_live(session)
            update = self.engine.submit_answer(session, connection_id, option_index)
            poll = session.current_poll
            deliveries = [
                Delivery(
                    connection_id,
                    AnswerAcknowledged(
                        poll_id=poll.id,
                        option_index=option_index,
                        score=update.score,
                        total_answered=update.total_answered,
                    ),
                )
            ]
            if session.teacher_connection:
                deliveries.append(
                    Delivery(
                        session.teacher_connection,
                        AnswerCount(poll_id=poll.id, answered=update.answered_count, total=update.participant_count),
                    )
                )
                deliveries.append(Delivery(session.teacher_connection, RosterUpdated(roster=session.roster())))
            return self._emit(deliveries)

    async def on_end_poll(self, connection_id: str) -> List[Delivery]:
        session = self._teacher_session(connection_id)
        async with session.lock:
            self._ensure_teacher(session, connection_id)
            try:
                snapshot = self.engine.end(session, ended_by="teacher")
            except NoActivePoll:
                self.logger.info("End poll ignored, nothing active session=%s", session.code)
                return []
            deliveries = self._emit(self._results(session, snapshot))
        await self._publish_results(session.code, snapshot)
        return deliveries

    async def on_poll_timeout(self, code: str, poll_id: str) -> List[Delivery]:
        session = self.sessions.find(code)
        if session is None:
            return []
        async with session.lock:
            poll = session.current_poll
            if not session.active or not session.poll_active or poll.id != poll_id:
                self.logger.info("Stale poll timeout ignored session=%s poll=%s", code, poll_id)
                return []
            snapshot = self.engine.end(session, ended_by="timeout")
            deliveries = self._emit(self._results(session, snapshot))
        await self._publish_results(session.code, snapshot)
        return deliveries

    # Moderation and chat

    async def on_kick(self, connection_id: str, target_connection_id: str) -> List[Delivery]:
        binding = self.connections.lookup(connection_id)
        if binding is None or binding.role != Role.TEACHER:
            self.logger.info("Kick ignored, caller is not a teacher connection=%s", connection_id)
            return []
        session = self.sessions.find(binding.session_code)
        if session is None:
            return []
        async with session.lock:
            if not session.active or session.teacher_connection != connection_id:
                return []
            participant = session.remove_participant(target_connection_id)
            if participant is None:
                self.logger.info(
                    "Kick ignored, no such participant session=%s target=%s", session.code, target_connection_id
                )
                return []
            self.connections.unbind(target_connection_id)
            deliveries = [
                Delivery(target_connection_id, RemovedFromSession(code=session.code, reason="kicked"), disconnect=True)
            ]
            deliveries.extend(self._roster_changed(session))
            self.logger.info(
                "Student kicked session=%s target=%s name=%r",
                session.code,
                target_connection_id,
                participant.display_name,
            )
            return self._emit(deliveries)

    async def on_chat_message(self, connection_id: str, text: str) -> List[Delivery]:
        text = (text or "").strip()
        if not text:
            raise InvalidMessage("Message cannot be empty")
        binding = self._binding(connection_id)
        session = self.sessions.get(binding.session_code)
        async with session.lock:
            self._ensure_live(session)
            if connection_id not in session.connections():
                raise NotFound("You are not part of this quiz")
            message = session.append_chat(
                ChatMessage(
                    sender_display_name=binding.display_name,
                    sender_role=binding.role,
                    text=text,
                    timestamp=self.clock(),
                )
            )
            broadcast = ChatBroadcast(message=message)
            return self._emit([Delivery(target, broadcast) for target in session.connections()])

    # Leaving

    async def on_disconnect(self, connection_id: str) -> List[Delivery]:
        binding = self.connections.unbind(connection_id)
        if binding is None:
            return []
        session = self.sessions.find(binding.session_code)
        if session is None:
            return []
        async with session.lock:
            if binding.role == Role.TEACHER:
                if session.teacher_connection != connection_id:
                    return []
                session.teacher_connection = None
                if self.teacher_grace_seconds <= 0:
                    self.logger.info("Teacher left, closing session=%s", session.code)
                    return self._emit(self._teardown(session, TeacherLeft()))
                self.timers.schedule(
                    teardown_timer_key(session.code),
                    self.teacher_grace_seconds,
                    lambda: self._teacher_grace_expired(session.code),
                )
                self.logger.info(
                    "Teacher disconnected session=%s grace=%ss", session.code, self.teacher_grace_seconds
                )
                notice = TeacherDisconnected(grace_seconds=self.teacher_grace_seconds)
                return self._emit([Delivery(target, notice) for target in session.participants])

            participant = session.remove_participant(connection_id)
            if participant is None:
                return []
            self.logger.info(
                "Student left session=%s connection=%s name=%r", session.code, connection_id, participant.display_name
            )
            return self._emit(self._roster_changed(session))

    async def _teacher_grace_expired(self, code: str) -> List[Delivery]:
        session = self.sessions.find(code)
        if session is None:
            return []
        async with session.lock:
            if session.teacher_connection is not None or not session.active:
                return []
            self.logger.info("Teacher did not return, closing session=%s", code)
            return self._emit(self._teardown(session, TeacherLeft()))

    async def close_session(self, code: str) -> List[Delivery]:
        session = self.sessions.get(code)
        async with session.lock:
            self.logger.info("Session closed on request session=%s", session.code)
            return self._emit(self._teardown(session, SessionClosed(code=session.code)))

    # Helpers

    def _emit(self, deliveries: List[Delivery]) -> List[Delivery]:
        self.outbox.dispatch(deliveries)
        return deliveries

    def _binding(self, connection_id: str) -> Binding:
        binding = self.connections.lookup(connection_id)
        if binding is None:
            raise NotFound("You have not joined a quiz")
        return binding

    def _ensure_unbound(self, connection_id: str) -> None:
        if self.connections.lookup(connection_id) is not None:
            raise InvalidMessage("This connection has already joined a quiz")

    def _ensure_live(self, session: Session) -> None:
        if not session.active:
            raise SessionNotFound()

    def _teacher_session(self, connection_id: str) -> Session:
        binding = self.connections.lookup(connection_id)
        if binding is None or binding.role != Role.TEACHER:
            raise Unauthorized()
        return self.sessions.get(binding.session_code)

    def _ensure_teacher(self, session: Session, connection_id: str) -> None:
        self._ensure_live(session)
        if session.teacher_connection != connection_id:
            raise Unauthorized()

    def _joined(self, session: Session, role: Role, connection_id: str) -> SessionJoined:
        poll = session.current_poll if session.poll_active else None
        is_teacher = role == Role.TEACHER
        return SessionJoined(
            role=role.value,
            code=session.code,
            title=session.title,
            description=session.description,
            connection_id=connection_id,
            roster=session.roster() if is_teacher else [],
            chat_log=list(session.chat_log),
            poll_bank=list(session.poll_bank) if is_teacher else [],
            current_poll=self.engine.view(poll) if poll else None,
            answered_count=len(poll.answers) if poll and is_teacher else 0,
        )

    def _poll_started(self, session: Session, poll: Poll) -> List[Delivery]:
        started = PollStarted(poll=self.engine.view(poll))
        deliveries = [Delivery(target, started) for target in session.participants]
        if session.teacher_connection:
            deliveries.append(
                Delivery(
                    session.teacher_connection,
                    AnswerCount(poll_id=poll.id, answered=0, total=len(session.participants)),
                )
            )
        return deliveries

    def _results(self, session: Session, snapshot: ResultsSnapshot) -> List[Delivery]:
        message = PollResults(results=snapshot)
        return [Delivery(target, message) for target in session.connections()]

    def _roster_changed(self, session: Session) -> List[Delivery]:
        roster = RosterUpdated(roster=session.roster())
        deliveries = [Delivery(target, roster) for target in session.connections()]
        poll = session.current_poll
        if session.poll_active and session.teacher_connection:
            deliveries.append(
                Delivery(
                    session.teacher_connection,
                    AnswerCount(poll_id=poll.id, answered=len(poll.answers), total=len(session.participants)),
                )
            )
        return deliveries

    def _teardown(self, session: Session, notice: BaseModel) -> List[Delivery]:
        """Drop the session and disconnect everyone still attached to it."""
        targets = session.connections()
        self.sessions.remove(session.code)
        for target in targets:
            self.connections.unbind(target)
        session.teacher_connection = None
        return [Delivery(target, notice, disconnect=True) for target in targets]

    async def _publish_results(self, code: str, snapshot: ResultsSnapshot) -> None:
        for listener in self.results_listeners:
            try:
                await listener(code, snapshot)
            except Exception:
                self.logger.exception("Results listener failed session=%s poll=%s", code, snapshot.poll_id)
