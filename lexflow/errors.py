"""Exception hierarchy shared by ingestion, embedding and generation."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class LexflowError(Exception):
    """Base exception carrying a message and a details mapping."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(LexflowError):
    """Raised when caller input is rejected. Never retried."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        self.field = field
        self.code = code
        super().__init__(message, details)


class TransientError(LexflowError):
    """A failure of an outbound call that may succeed if repeated."""

    def __init__(
        self,
        message: str,
        attempt: int = 1,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["attempt"] = attempt
        self.attempt = attempt
        self.cause = cause
        super().__init__(message, details)


class ThrottledError(TransientError):
    """The remote service reported rate limiting."""


class EmbeddingError(LexflowError):
    """The embedding provider returned an unusable response."""


class IngestionError(LexflowError):
    """A single uploaded file could not be ingested."""

    def __init__(
        self,
        code: str,
        message: str,
        suggestions: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.code = code
        self.suggestions = list(suggestions or [])
        super().__init__(message, details)


class AdmissionError(LexflowError):
    """Base class for generation requests that were not executed."""


class UserBusyError(AdmissionError):
    """The user already has a generation in progress."""

    def __init__(self, user_id: str, retry_after: float) -> None:
        self.user_id = user_id
        self.retry_after = retry_after
        super().__init__(
            "Generation is currently in progress. Please try again later.",
            {"user_id": user_id, "retry_after": retry_after},
        )


class QueueTimeoutError(AdmissionError):
    """A queued request waited longer than the queue allows."""

    def __init__(self, request_id: str, waited: float) -> None:
        self.request_id = request_id
        self.waited = waited
        super().__init__(
            "Request timed out while waiting in the generation queue.",
            {"request_id": request_id, "waited_seconds": round(waited, 1)},
        )
