from live_poll.models.accounts import QuizRecord, TeacherAccount
from live_poll.models.history import PollRecord

__all__ = ["QuizRecord", "TeacherAccount", "PollRecord"]
