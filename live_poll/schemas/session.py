from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from live_poll.core.time import utc_now


class Role(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class PollState(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class SessionConfig(BaseModel):
    title: str
    description: str = ""
    max_participants: int = Field(default=50, ge=1)
    allow_late_join: bool = True
    owner_id: Optional[str] = None


class Participant(BaseModel):
    connection_id: str
    display_name: str
    joined_at: datetime = Field(default_factory=utc_now)
    has_answered_current_poll: bool = False
    score: int = 0
    total_answered: int = 0


class PollTemplate(BaseModel):
    question: str
    options: List[str]
    correct_option_index: int
    duration_seconds: int = 60


class Poll(BaseModel):
    id: str
    question: str
    options: List[str]
    correct_option_index: int
    duration_seconds: int
    started_at: datetime = Field(default_factory=utc_now)
    state: PollState = PollState.ACTIVE
    answers: Dict[str, int] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender_display_name: str
    sender_role: Role
    text: str
    timestamp: datetime = Field(default_factory=utc_now)


class OptionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    count: int
    percentage: int


class ResultsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    poll_id: str
    question: str
    results: List[OptionResult]
    correct_option_index: int
    total_participants: int
    total_answers: int
    ended_by: str
    ended_at: datetime = Field(default_factory=utc_now)


class ScoreUpdate(BaseModel):
    score: int
    total_answered: int
    answered_count: int
    participant_count: int


class RosterEntry(BaseModel):
    connection_id: str
    display_name: str
    joined_at: datetime
    has_answered: bool
    score: int
    total_answered: int


class PollView(BaseModel):
    """What students see of a running poll: never the correct index."""

    id: str
    question: str
    options: List[str]
    duration_seconds: int
    started_at: datetime
    remaining_seconds: int
