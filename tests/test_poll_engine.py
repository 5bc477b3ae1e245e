from datetime import timedelta

import pytest

from live_poll.core.errors import AlreadyAnswered, InvalidOption, InvalidPoll, NoActivePoll, NotFound
from live_poll.core.time import utc_now
from live_poll.schemas.session import PollState, PollTemplate, SessionConfig
from live_poll.services.poll_engine import PollEngine, clean_poll, percentage
from live_poll.services.session_registry import Session
from live_poll.services.timers import TimerService


class FakeClock:
    def __init__(self):
        self.now = utc_now()

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    # No timeout handler: nothing is scheduled, so these tests need no event loop
    return PollEngine(TimerService(), clock=clock)


@pytest.fixture
def session():
    session = Session("ABC123", SessionConfig(title="Geography"))
    session.add_participant("s1", "Aisha")
    session.add_participant("s2", "Adam")
    return session


def start_capitals(engine, session):
    return engine.start(session, "Capital of France?", ["Paris", "London"], 0, 30)


class TestStart:
    def test_start_activates_poll(self, engine, session, clock):
        poll = start_capitals(engine, session)

        assert session.current_poll is poll
        assert poll.state == PollState.ACTIVE
        assert poll.started_at == clock.now
        assert poll.answers == {}
        assert session.polls_asked == 1

    @pytest.mark.parametrize(
        "question, options, correct",
        [
            ("Q?", ["Only one"], 0),
            ("Q?", ["Paris", "   "], 0),
            ("Q?", ["Paris", "London"], 2),
            ("Q?", ["Paris", "London"], -1),
            ("   ", ["Paris", "London"], 0),
        ],
    )
    def test_start_rejects_invalid_content(self, engine, session, question, options, correct):
        with pytest.raises(InvalidPoll):
            engine.start(session, question, options, correct, 30)
        assert session.current_poll is None

    def test_start_rejects_non_positive_duration(self, engine, session):
        with pytest.raises(InvalidPoll):
            engine.start(session, "Q?", ["a", "b"], 0, 0)

    def test_start_rejects_second_active_poll(self, engine, session):
        first = start_capitals(engine, session)

        with pytest.raises(InvalidPoll):
            engine.start(session, "Another?", ["Yes", "No"], 1, 10)
        assert session.current_poll is first

    def test_start_resets_answered_flags(self, engine, session):
        start_capitals(engine, session)
        engine.submit_answer(session, "s1", 0)
        engine.end(session)
        assert session.participants["s1"].has_answered_current_poll is True

        start_capitals(engine, session)

        assert all(not p.has_answered_current_poll for p in session.participants.values())

    def test_template_round_trip(self, engine, session):
        template = PollTemplate(question="2 + 2?", options=["3", "4", "5"], correct_option_index=1, duration_seconds=45)
        index = session.save_template(template)

        poll = engine.start_from_template(session, index)

        assert poll.question == template.question
        assert poll.options == template.options
        assert poll.correct_option_index == template.correct_option_index
        assert poll.duration_seconds == template.duration_seconds

    def test_unknown_template_rejected(self, engine, session):
        with pytest.raises(InvalidPoll):
            engine.start_from_template(session, 3)


class TestSubmitAnswer:
    def test_correct_answer_scores(self, engine, session):
        start_capitals(engine, session)

        update = engine.submit_answer(session, "s1", 0)

        assert (update.score, update.total_answered) == (1, 1)
        assert (update.answered_count, update.participant_count) == (1, 2)
        assert session.participants["s1"].has_answered_current_poll is True

    def test_wrong_answer_counts_but_does_not_score(self, engine, session):
        start_capitals(engine, session)

        update = engine.submit_answer(session, "s2", 1)

        assert (update.score, update.total_answered) == (0, 1)

    def test_second_submission_rejected_first_wins(self, engine, session):
        poll = start_capitals(engine, session)
        engine.submit_answer(session, "s1", 0)

        with pytest.raises(AlreadyAnswered):
            engine.submit_answer(session, "s1", 1)

        assert poll.answers == {"s1": 0}
        assert session.participants["s1"].score == 1
        assert session.participants["s1"].total_answered == 1

    def test_out_of_range_option(self, engine, session):
        poll = start_capitals(engine, session)

        with pytest.raises(InvalidOption):
            engine.submit_answer(session, "s1", 5)
        assert poll.answers == {}
        assert session.participants["s1"].total_answered == 0

    def test_no_active_poll(self, engine, session):
        with pytest.raises(NoActivePoll):
            engine.submit_answer(session, "s1", 0)

    def test_answer_after_end_rejected(self, engine, session):
        start_capitals(engine, session)
        engine.end(session)

        with pytest.raises(NoActivePoll):
            engine.submit_answer(session, "s1", 0)

    def test_non_participant_rejected(self, engine, session):
        start_capitals(engine, session)

        with pytest.raises(NotFound):
            engine.submit_answer(session, "ghost", 0)

    def test_scores_accumulate_across_polls(self, engine, session):
        for _ in range(3):
            start_capitals(engine, session)
            engine.submit_answer(session, "s1", 0)
            engine.end(session)

        participant = session.participants["s1"]
        assert (participant.score, participant.total_answered) == (3, 3)


class TestEnd:
    def test_split_vote_results(self, engine, session):
        start_capitals(engine, session)
        engine.submit_answer(session, "s1", 0)
        engine.submit_answer(session, "s2", 1)

        snapshot = engine.end(session)

        assert [(r.text, r.count, r.percentage) for r in snapshot.results] == [
            ("Paris", 1, 50),
            ("London", 1, 50),
        ]
        assert snapshot.correct_option_index == 0
        assert snapshot.total_participants == 2
        assert snapshot.total_answers == 2
        assert snapshot.ended_by == "teacher"
        assert session.current_poll is None

    def test_everyone_correct_is_full_marks(self, engine, session):
        start_capitals(engine, session)
        for connection_id in session.participants:
            engine.submit_answer(session, connection_id, 0)

        snapshot = engine.end(session)

        assert snapshot.results[0].count == 2
        assert snapshot.results[0].percentage == 100

    def test_no_participants_gives_zero_percentages(self, engine):
        empty = Session("EMPTY1", SessionConfig(title="Empty"))
        start_capitals(engine, empty)

        snapshot = engine.end(empty, ended_by="timeout")

        assert [r.percentage for r in snapshot.results] == [0, 0]
        assert snapshot.ended_by == "timeout"

    def test_unanswered_participants_count_in_denominator(self, engine, session):
        session.add_participant("s3", "Zoe")
        start_capitals(engine, session)
        engine.submit_answer(session, "s1", 0)
        engine.submit_answer(session, "s2", 0)

        snapshot = engine.end(session)

        assert snapshot.results[0].percentage == 67
        assert snapshot.results[1].percentage == 0

    def test_end_without_poll(self, engine, session):
        with pytest.raises(NoActivePoll):
            engine.end(session)

    def test_end_twice(self, engine, session):
        start_capitals(engine, session)
        engine.end(session)

        with pytest.raises(NoActivePoll):
            engine.end(session)

    def test_departed_participant_answer_is_dropped(self, engine, session):
        poll = start_capitals(engine, session)
        engine.submit_answer(session, "s1", 0)
        engine.submit_answer(session, "s2", 1)

        session.remove_participant("s2")
        snapshot = engine.end(session)

        assert "s2" not in poll.answers
        assert [r.count for r in snapshot.results] == [1, 0]
        assert snapshot.results[0].percentage == 100


class TestHelpers:
    @pytest.mark.parametrize(
        "count, total, expected",
        [(0, 0, 0), (1, 2, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)],
    )
    def test_percentage(self, count, total, expected):
        assert percentage(count, total) == expected

    def test_remaining_seconds_counts_down_and_clamps(self, engine, session, clock):
        poll = start_capitals(engine, session)

        assert engine.remaining_seconds(poll) == 30
        clock.advance(12.5)
        assert engine.remaining_seconds(poll) == 18
        clock.advance(60)
        assert engine.remaining_seconds(poll) == 0

    def test_view_hides_correct_answer(self, engine, session):
        poll = start_capitals(engine, session)

        view = engine.view(poll).model_dump()

        assert "correct_option_index" not in view
        assert "answers" not in view
        assert view["options"] == ["Paris", "London"]

    def test_clean_poll_strips_whitespace(self):
        template = clean_poll("  Capital?  ", [" Paris ", "London"], 0, 20)

        assert template.question == "Capital?"
        assert template.options == ["Paris", "London"]
