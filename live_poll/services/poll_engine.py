import logging
import math
import uuid
from typing import Awaitable, Callable, List, Optional

from live_poll.core.errors import (
    AlreadyAnswered,
    InvalidOption,
    InvalidPoll,
    NoActivePoll,
    NotFound,
)
from live_poll.core.time import utc_now
from live_poll.schemas.session import (
    OptionResult,
    Poll,
    PollState,
    PollTemplate,
    PollView,
    ResultsSnapshot,
    ScoreUpdate,
)
from live_poll.services.session_registry import Session
from live_poll.services.timers import TimerService, poll_timer_key

# Called with (session code, poll id) when a poll's duration elapses
TimeoutHandler = Callable[[str, str], Awaitable[None]]


def percentage(count: int, total: int) -> int:
    """Share of ``total`` as a whole percent, halves rounded up."""
    if total <= 0:
        return 0
    return int(math.floor(count * 100 / total + 0.5))


def clean_poll(question: str, options: List[str], correct_index: int, duration_seconds: int) -> PollTemplate:
    """Validate poll content and return it with surrounding whitespace stripped."""
    if not question or not question.strip():
        raise InvalidPoll("Question text is required")
    cleaned = [option.strip() if isinstance(option, str) else "" for option in options or []]
    if len(cleaned) < 2 or not all(cleaned):
        raise InvalidPoll("A poll needs at least two non-empty options")
    if not 0 <= correct_index < len(cleaned):
        raise InvalidPoll("Correct answer must be one of the options")
    if duration_seconds <= 0:
        raise InvalidPoll("Poll duration must be positive")
    return PollTemplate(
        question=question.strip(),
        options=cleaned,
        correct_option_index=correct_index,
        duration_seconds=duration_seconds,
    )


class PollEngine:
    """Runs the life cycle of the poll held by a session.

    Callers hold ``session.lock`` around every method. Each operation checks
    all of its preconditions before touching the session.
    """

    def __init__(self, timers: TimerService, on_timeout: Optional[TimeoutHandler] = None, clock=utc_now):
        self.logger = logging.getLogger("engine")
        self.timers = timers
        self.on_timeout = on_timeout
        self.clock = clock

    def start(
        self,
        session: Session,
        question: str,
        options: List[str],
        correct_index: int,
        duration_seconds: int,
    ) -> Poll:
        if session.poll_active:
            raise InvalidPoll("A poll is already running")
        content = clean_poll(question, options, correct_index, duration_seconds)

        poll = Poll(
            id=uuid.uuid4().hex[:8],
            question=content.question,
            options=content.options,
            correct_option_index=content.correct_option_index,
            duration_seconds=content.duration_seconds,
            started_at=self.clock(),
        )
        for participant in session.participants.values():
            participant.has_answered_current_poll = False
        session.current_poll = poll
        session.polls_asked += 1
        if self.on_timeout is not None:
            handler = self.on_timeout
            self.timers.schedule(
                poll_timer_key(session.code),
                duration_seconds,
                lambda: handler(session.code, poll.id),
            )
        self.logger.info(
            "Poll started session=%s poll=%s options=%s duration=%s participants=%s",
            session.code,
            poll.id,
            len(poll.options),
            duration_seconds,
            len(session.participants),
        )
        return poll

    def start_from_template(self, session: Session, index: int) -> Poll:
        if not 0 <= index < len(session.poll_bank):
            raise InvalidPoll("Saved poll does not exist")
        template: PollTemplate = session.poll_bank[index]
        return self.start(
            session,
            template.question,
            template.options,
            template.correct_option_index,
            template.duration_seconds,
        )

    def submit_answer(self, session: Session, connection_id: str, option_index: int) -> ScoreUpdate:
        poll = session.current_poll
        if poll is None or poll.state != PollState.ACTIVE:
            raise NoActivePoll()
        participant = session.participants.get(connection_id)
        if participant is None:
            raise NotFound("You are not a participant of this quiz")
        if connection_id in poll.answers:
            raise AlreadyAnswered()
        if not 0 <= option_index < len(poll.options):
            raise InvalidOption()

        poll.answers[connection_id] = option_index
        participant.total_answered += 1
        if option_index == poll.correct_option_index:
            participant.score += 1
        participant.has_answered_current_poll = True
        self.logger.info(
            "Answer recorded session=%s poll=%s participant=%s answered=%s/%s",
            session.code,
            poll.id,
            connection_id,
            len(poll.answers),
            len(session.participants),
        )
        return ScoreUpdate(
            score=participant.score,
            total_answered=participant.total_answered,
            answered_count=len(poll.answers),
            participant_count=len(session.participants),
        )

    def end(self, session: Session, ended_by: str = "teacher") -> ResultsSnapshot:
        poll = session.current_poll
        if poll is None or poll.state != PollState.ACTIVE:
            raise NoActivePoll()

        self.timers.cancel(poll_timer_key(session.code))
        poll.state = PollState.ENDED
        total = len(session.participants)
        counts = [0] * len(poll.options)
        for choice in poll.answers.values():
            counts[choice] += 1
        snapshot = ResultsSnapshot(
            poll_id=poll.id,
            question=poll.question,
            results=[
                OptionResult(text=text, count=count, percentage=percentage(count, total))
                for text, count in zip(poll.options, counts)
            ],
            correct_option_index=poll.correct_option_index,
            total_participants=total,
            total_answers=len(poll.answers),
            ended_by=ended_by,
            ended_at=self.clock(),
        )
        session.current_poll = None
        self.logger.info(
            "Poll ended session=%s poll=%s by=%s answers=%s/%s counts=%s",
            session.code,
            poll.id,
            ended_by,
            len(poll.answers),
            total,
            counts,
        )
        return snapshot

    def remaining_seconds(self, poll: Poll) -> int:
        elapsed = (self.clock() - poll.started_at).total_seconds()
        return max(0, math.ceil(poll.duration_seconds - elapsed))

    def view(self, poll: Poll) -> PollView:
        return PollView(
            id=poll.id,
            question=poll.question,
            options=list(poll.options),
            duration_seconds=poll.duration_seconds,
            started_at=poll.started_at,
            remaining_seconds=self.remaining_seconds(poll),
        )
