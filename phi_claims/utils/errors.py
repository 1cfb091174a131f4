"""
Custom Exceptions
Error taxonomy for the intake pipeline
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
Verified: 2026-10-01

Errors raised below the HTTP layer are plain exceptions carrying the status
code they map to; the API installs handlers that turn them into responses.
"""

from typing import Optional

from fastapi import status


class PipelineError(Exception):
    """Base exception for intake pipeline errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(PipelineError):
    """Raised when caller input is malformed. Never retried."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []

    @property
    def public_message(self) -> str:  # type: ignore[override]
        return self.message


class NotFoundError(PipelineError):
    """Raised when a record is not visible under the current tenant."""

    status_code = status.HTTP_404_NOT_FOUND

    @property
    def public_message(self) -> str:  # type: ignore[override]
        return self.message


class PersistenceError(PipelineError):
    """Raised when the data store rejects or cannot complete a write."""

    public_message = "Failed to record intake"


class TransientInfraError(PipelineError):
    """Store, queue or bus temporarily unavailable. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_message = "Service temporarily unavailable"


class ConflictError(TransientInfraError):
    """Raised when a concurrent writer won a uniqueness race."""


class PoisonMessageError(PipelineError):
    """Raised when a queue message can never be processed."""


class IntakeRejectedError(PipelineError):
    """Raised when an intake's stored data cannot produce a claim."""
