"""Exceptions shared by the pipeline core and the HTTP layer."""

from __future__ import annotations


class PreconditionError(RuntimeError):
    """Raised when a stage is requested for a call that is not ready for it."""

    status_code = 400


class CallNotFoundError(PreconditionError):
    """Raised when the call does not exist or belongs to another user."""

    status_code = 404

    def __init__(self, message: str = "Call not found") -> None:
        super().__init__(message)


class StageConflictError(PreconditionError):
    """Raised when a stage is already running or the call is in the wrong state."""

    status_code = 409


class StageSupersededError(StageConflictError):
    """Raised when a call left the stage's in-progress status before its result was written."""


class RepositoryError(RuntimeError):
    """Raised when the persistence layer cannot complete an operation."""


class DuplicateRecordError(RepositoryError):
    """Raised when a one-to-one record already exists."""


__all__ = [
    "PreconditionError",
    "CallNotFoundError",
    "StageConflictError",
    "StageSupersededError",
    "RepositoryError",
    "DuplicateRecordError",
]
