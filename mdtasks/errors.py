"""Structured error types for task operations and store access."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class ErrorResponse:
    """Serializable error payload returned by task handlers."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class TaskError(RuntimeError):
    """Exception carrying a structured error response."""

    code = "TASK_ERROR"

    def __init__(
        self,
        message: str,
        details: Mapping[str, Any] | None = None,
        *,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error = ErrorResponse(
            code=code or self.code, message=message, details=dict(details or {})
        )


class TaskValidationError(TaskError):
    """Raised when tasks fail validation at write time."""

    code = "VALIDATION_FAILED"


class InvalidFieldError(TaskError):
    """Raised when a single field value is rejected by an operation."""

    code = "INVALID_FIELD"


class DuplicateTaskError(TaskError):
    code = "DUPLICATE_TASK"


class TaskNotFoundError(TaskError):
    code = "TASK_NOT_FOUND"


class NoChangeError(TaskError):
    """Raised when an edit would leave the task unchanged."""

    code = "NO_CHANGE"


class TimeConflictError(TaskError):
    """Raised when a task's scheduled window overlaps another task."""

    code = "TIME_CONFLICT"


class StoreError(TaskError):
    """Non-retryable failure talking to the document store."""

    code = "STORE_ERROR"


class DocumentNotFoundError(StoreError):
    code = "DOCUMENT_NOT_FOUND"


class StoreConflictError(StoreError):
    """The store rejected a write because the content token is stale."""

    code = "STORE_CONFLICT"


class RetryExhaustedError(StoreError):
    code = "RETRY_EXHAUSTED"


def success_response(payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap a successful response in the standard envelope."""
    return {"ok": True, "data": payload}


def error_response(error: ErrorResponse) -> dict[str, Any]:
    """Wrap an error response in the standard envelope."""
    return {"ok": False, "error": error.to_dict()}
