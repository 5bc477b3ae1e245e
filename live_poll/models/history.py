import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from live_poll.core.time import utc_now


class PollRecord(SQLModel, table=True):
    """Results of a poll after it ended, kept once the live session is gone."""

    __tablename__ = "poll_records"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    quiz_id: str = Field(foreign_key="quizzes.id", index=True)
    poll_id: str
    question: str
    correct_option_index: int
    results: list[dict] = Field(default_factory=list, sa_column=Column(JSON))
    total_participants: int = 0
    total_answers: int = 0
    ended_by: str = "teacher"
    ended_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))
