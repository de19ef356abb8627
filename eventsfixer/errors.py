"""Application error taxonomy.

Every error carries a stable ``code`` and the HTTP status it maps to. Only the
code and the message ever reach clients; the API exception handlers take care
of hiding anything else.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for errors that are safe to report to clients."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Input or a stored document does not satisfy the schema."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Validation failed"


class MigrationError(AppError):
    """No known migration path brings a document to the current schema."""

    code = "MIGRATION_ERROR"
    status_code = 400
    default_message = "Unsupported page config"


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    """Authenticated, but not allowed to touch the resource."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    """A unique constraint would be violated."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Resource already exists"


class EventFullError(ConflictError):
    """Raised when an event is at capacity for YES RSVPs."""

    code = "EVENT_FULL"
    default_message = "This event has reached its maximum number of attendees."


class RSVPClosedError(AppError):
    code = "RSVP_CLOSED"
    status_code = 403
    default_message = "RSVPs for this event are closed."


class RateLimitError(AppError):
    code = "RATE_LIMIT"
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, message: str | None = None, *, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after
