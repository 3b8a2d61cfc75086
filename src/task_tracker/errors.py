"""
Error taxonomy for the Task Tracker API.

Every client-facing failure is a TaskTrackerError subclass carrying the HTTP
status code and the ``error`` label used in the JSON envelope. Anything else
raised while handling a request is treated as an internal error.
"""

from typing import Any, Dict


class TaskTrackerError(Exception):
    """Base class for errors that map directly to an HTTP response."""

    status_code: int = 500
    error: str = "InternalError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message}


class UnauthorizedError(TaskTrackerError):
    """Raised when the request carries no identity token."""

    status_code = 401
    error = "Unauthorized"


class ValidationError(TaskTrackerError):
    """Raised for malformed input: missing fields, bad enum values, empty patches."""

    status_code = 400
    error = "ValidationError"


class InvalidTaskIdError(ValidationError):
    """Raised by the store when a task identifier is not in its id format."""

    def __init__(self, message: str = "Invalid task ID format"):
        super().__init__(message)


class NotFoundError(TaskTrackerError):
    """Raised when no task matches the identifier for the calling identity."""

    status_code = 404
    error = "NotFound"
