class QuizServiceError(Exception):
    """Base class for quiz session failures."""


class QuizLoadError(QuizServiceError):
    """The quiz definition could not be fetched. Aborts session start."""


class QuizNotFound(QuizLoadError):
    def __init__(self, quiz_id: str):
        super().__init__(f"Quiz not found: {quiz_id}")
        self.quiz_id = quiz_id


class ProgressWriteError(QuizServiceError):
    """The progress row could not be persisted. Safe to retry."""


class CertificateIssueError(QuizServiceError):
    pass


class SessionStateError(QuizServiceError):
    """Operation not allowed in the session's current state."""

    def __init__(self, message: str, state: str):
        super().__init__(message)
        self.state = state
