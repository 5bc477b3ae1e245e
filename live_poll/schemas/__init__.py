from live_poll.schemas.admin import (
    AuthResponse,
    PollRecordRead,
    QuizCreate,
    QuizRead,
    StudentJoinRequest,
    StudentJoinResponse,
    TeacherLogin,
    TeacherRead,
    TeacherRegister,
)
from live_poll.schemas.session import (
    ChatMessage,
    OptionResult,
    Participant,
    Poll,
    PollState,
    PollTemplate,
    PollView,
    ResultsSnapshot,
    Role,
    RosterEntry,
    ScoreUpdate,
    SessionConfig,
)

__all__ = [
    "AuthResponse",
    "PollRecordRead",
    "QuizCreate",
    "QuizRead",
    "StudentJoinRequest",
    "StudentJoinResponse",
    "TeacherLogin",
    "TeacherRead",
    "TeacherRegister",
    "ChatMessage",
    "OptionResult",
    "Participant",
    "Poll",
    "PollState",
    "PollTemplate",
    "PollView",
    "ResultsSnapshot",
    "Role",
    "RosterEntry",
    "ScoreUpdate",
    "SessionConfig",
]
