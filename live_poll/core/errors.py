"""Expected, recoverable failures of the live session engine.

Each error carries a stable ``kind`` that is sent to the originating
connection inside an ``error`` message, and an HTTP status used when the
same failure surfaces through a REST route.
"""

from typing import Optional


class QuizError(Exception):
    kind = "QuizError"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class SessionNotFound(QuizError):
    kind = "SessionNotFound"
    status_code = 404
    default_message = "Quiz not found. Please check the code."


class SessionFull(QuizError):
    kind = "SessionFull"
    status_code = 409
    default_message = "Quiz is full"


class QuizInactive(QuizError):
    kind = "QuizInactive"
    status_code = 409
    default_message = "This quiz is no longer accepting participants"


class InvalidSessionConfig(QuizError):
    kind = "InvalidSessionConfig"
    default_message = "Quiz title is required"


class InvalidPoll(QuizError):
    kind = "InvalidPoll"
    default_message = "Poll is not valid"


class NoActivePoll(QuizError):
    kind = "NoActivePoll"
    status_code = 409
    default_message = "There is no active poll"


class AlreadyAnswered(QuizError):
    kind = "AlreadyAnswered"
    status_code = 409
    default_message = "You have already answered this poll"


class InvalidOption(QuizError):
    kind = "InvalidOption"
    default_message = "Selected option does not exist"


class Unauthorized(QuizError):
    kind = "Unauthorized"
    status_code = 403
    default_message = "Only the quiz teacher can do that"


class NotFound(QuizError):
    kind = "NotFound"
    status_code = 404
    default_message = "Participant not found"


class InvalidMessage(QuizError):
    kind = "InvalidMessage"
    default_message = "Message could not be understood"


class InvalidCredentials(QuizError):
    kind = "InvalidCredentials"
    status_code = 401
    default_message = "Invalid credentials"


class AccountExists(QuizError):
    kind = "AccountExists"
    default_message = "Username or email already exists"
