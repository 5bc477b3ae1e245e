"""Websocket frames exchanged with participants."""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from live_poll.schemas.session import (
    ChatMessage,
    PollTemplate,
    PollView,
    ResultsSnapshot,
    RosterEntry,
)


# Inbound actions

class JoinAsTeacher(BaseModel):
    type: Literal["join-as-teacher"]
    code: str
    token: Optional[str] = None


class JoinAsStudent(BaseModel):
    type: Literal["join-as-student"]
    code: str
    display_name: str = Field(min_length=1, max_length=64)


class CreatePoll(BaseModel):
    type: Literal["create-poll"]
    question: str
    options: List[str]
    correct_option_index: int
    duration_seconds: Optional[int] = None

    def template(self, default_duration: int = 60) -> PollTemplate:
        duration = self.duration_seconds if self.duration_seconds is not None else default_duration
        return PollTemplate(
            question=self.question,
            options=self.options,
            correct_option_index=self.correct_option_index,
            duration_seconds=duration,
        )


class SavePoll(CreatePoll):
    type: Literal["save-poll"]


class AskSavedPoll(BaseModel):
    type: Literal["ask-saved-poll"]
    index: int


class SubmitAnswer(BaseModel):
    type: Literal["submit-answer"]
    option_index: int


class EndPoll(BaseModel):
    type: Literal["end-poll"]


class Kick(BaseModel):
    type: Literal["kick"]
    target_connection_id: str


class SendChat(BaseModel):
    type: Literal["chat-message"]
    text: str = Field(max_length=2000)


InboundAction = Annotated[
    Union[
        JoinAsTeacher,
        JoinAsStudent,
        CreatePoll,
        SavePoll,
        AskSavedPoll,
        SubmitAnswer,
        EndPoll,
        Kick,
        SendChat,
    ],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundAction)


# Outbound notifications

class Connected(BaseModel):
    type: Literal["connected"] = "connected"
    connection_id: str


class SessionJoined(BaseModel):
    type: Literal["session-joined"] = "session-joined"
    role: str
    code: str
    title: str
    description: str
    connection_id: str
    roster: List[RosterEntry] = Field(default_factory=list)
    chat_log: List[ChatMessage] = Field(default_factory=list)
    poll_bank: List[PollTemplate] = Field(default_factory=list)
    current_poll: Optional[PollView] = None
    answered_count: int = 0


class RosterUpdated(BaseModel):
    type: Literal["roster-updated"] = "roster-updated"
    roster: List[RosterEntry]


class PollStarted(BaseModel):
    type: Literal["poll-started"] = "poll-started"
    poll: PollView


class AnswerCount(BaseModel):
    type: Literal["answer-count"] = "answer-count"
    poll_id: str
    answered: int
    total: int


class AnswerAcknowledged(BaseModel):
    type: Literal["answer-acknowledged"] = "answer-acknowledged"
    poll_id: str
    option_index: int
    score: int
    total_answered: int


class PollResults(BaseModel):
    type: Literal["poll-results"] = "poll-results"
    results: ResultsSnapshot


class RemovedFromSession(BaseModel):
    type: Literal["removed-from-session"] = "removed-from-session"
    code: str
    reason: str = "kicked"


class ChatBroadcast(BaseModel):
    type: Literal["chat-message"] = "chat-message"
    message: ChatMessage


class PollBankUpdated(BaseModel):
    type: Literal["poll-bank-updated"] = "poll-bank-updated"
    poll_bank: List[PollTemplate]


class TeacherDisconnected(BaseModel):
    type: Literal["teacher-disconnected"] = "teacher-disconnected"
    grace_seconds: float


class TeacherReturned(BaseModel):
    type: Literal["teacher-returned"] = "teacher-returned"


class TeacherLeft(BaseModel):
    type: Literal["teacher-left"] = "teacher-left"


class SessionClosed(BaseModel):
    type: Literal["session-closed"] = "session-closed"
    code: str


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    kind: str
    message: str
