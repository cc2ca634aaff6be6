"""Custom exceptions for the quiz client."""

from typing import Any, Optional


class QuizClientError(Exception):
    """Base exception for quiz client errors."""

    pass


class ApiError(QuizClientError):
    """Backend request failed (transport error or non-2xx response)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        data: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data

    @property
    def already_submitted(self) -> bool:
        """True when the backend rejected a submit because the attempt is closed."""
        return self.status_code in (400, 409) and "already" in self.message.lower()


class StartFailed(QuizClientError):
    """Attempt creation was rejected."""

    def __init__(self, message: str, existing_attempt_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.existing_attempt_id = existing_attempt_id


class SyncFailed(QuizClientError):
    """Per-question answer sync failed. Non-fatal."""

    pass


class SubmitFailed(QuizClientError):
    """Attempt submission failed."""

    pass


class InvalidStateError(QuizClientError):
    """Operation is not allowed in the controller's current status."""

    pass


class InvalidAnswerError(QuizClientError):
    """Answer does not fit the question it was given for."""

    pass


class NavigationError(QuizClientError):
    """Question index out of range."""

    pass


class ResultUnavailable(QuizClientError):
    """Results for an attempt could not be fetched or are withheld."""

    pass
