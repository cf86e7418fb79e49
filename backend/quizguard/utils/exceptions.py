"""
Application exceptions for the integrity engine.

Every domain error carries an HTTP status code so the API layer can render it
without a translation table.
"""

from typing import Optional


class AppError(Exception):
    """Base application error"""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class ConfigError(AppError):
    """Invalid anti-cheat policy. Raised when quiz settings are saved."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, 422)
        self.field = field


class UnknownSessionError(AppError):
    """An inbound event names a session that is unknown or already closed"""

    def __init__(self, session_id: str):
        super().__init__(f"Unknown or closed proctoring session: {session_id}", 404)
        self.session_id = session_id


class SessionNotFoundError(AppError):
    def __init__(self, session_id: str):
        super().__init__("Proctoring session not found", 404)
        self.session_id = session_id


class QuizNotFoundError(AppError):
    def __init__(self, quiz_id: str):
        super().__init__("Quiz not found", 404)
        self.quiz_id = quiz_id


class AttemptAlreadySubmittedError(AppError):
    def __init__(self, message: str = "You have already taken this quiz. Each quiz can only be taken once."):
        super().__init__(message, 409)


class SessionConflictError(AppError):
    """Optimistic update retries exhausted for a session"""

    def __init__(self, session_id: str, attempts: int):
        super().__init__(
            f"Concurrent updates to session {session_id} could not be applied after {attempts} attempts",
            409
        )
        self.session_id = session_id


class GradingInputError(AppError):
    """
    Malformed answer-key data for one question.

    The grader never lets this escape: it is logged and the question is
    graded as incorrect.
    """

    def __init__(self, question_index: int, reason: str):
        super().__init__(f"Question {question_index}: {reason}", 422)
        self.question_index = question_index
        self.reason = reason
