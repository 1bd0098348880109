"""Exception types raised by the quiz runner."""

from __future__ import annotations

MAX_ATTEMPTS_REACHED_CODE = "max_attempts_reached"
QUIZ_UNAVAILABLE_CODE = "quiz_unavailable"


class AnswerValidationError(ValueError):
    """Raised when an answer value does not fit its question."""


class SessionStateError(RuntimeError):
    """Raised when a session operation is called in a state that does not allow it."""


class QuizImportError(Exception):
    """Raised when a quiz definition cannot be parsed."""


class NotFoundError(LookupError):
    """Raised by the attempt service for unknown quizzes, attempts or questions."""


class OwnershipError(PermissionError):
    """Raised when a learner touches an attempt that belongs to someone else."""


class AttemptLimitError(RuntimeError):
    """Raised by the attempt service when a learner has used every attempt."""


class QuizClosedError(RuntimeError):
    """Raised by the attempt service when a quiz cannot be attempted."""


class GatewayError(Exception):
    """A failed call to the attempt service.

    ``retryable`` tells the session whether the learner should be offered a retry;
    ``code`` carries the machine-readable error code from the service, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status = status
        self.code = code


class RequestTimeoutError(GatewayError):
    """The request did not complete within its time budget."""


class MaxAttemptsReachedError(GatewayError):
    """The service refused to start an attempt because none remain."""

    def __init__(self, message: str = "Maximum attempts reached for this quiz", **kwargs) -> None:
        kwargs.setdefault("retryable", False)
        kwargs.setdefault("code", MAX_ATTEMPTS_REACHED_CODE)
        super().__init__(message, **kwargs)


class QuizUnavailableError(GatewayError):
    """The quiz is inactive or has no questions."""

    def __init__(self, message: str = "Quiz is not available", **kwargs) -> None:
        kwargs.setdefault("retryable", False)
        kwargs.setdefault("code", QUIZ_UNAVAILABLE_CODE)
        super().__init__(message, **kwargs)
