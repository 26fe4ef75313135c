"""
Error taxonomy for the Entry aggregate.

Services raise these; ``heritage.main`` renders every subclass as
``{"message": ..., "code": ...}`` with the class's HTTP status so callers
can branch on ``code`` without parsing messages.
"""


class EntryServiceError(Exception):
    """Base class for every failure the entry services report to callers."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(EntryServiceError):
    """No entry (or comment) exists for the given identifier."""

    status_code = 404
    code = "not_found"
    default_message = "Entry not found"


class ForbiddenError(EntryServiceError):
    """Caller is neither the comment's author nor an admin."""

    status_code = 403
    code = "forbidden"
    default_message = "Not authorized"


class ConflictError(EntryServiceError):
    """Another entry already owns the derived slug."""

    status_code = 409
    code = "conflict"
    default_message = "An entry with this slug already exists"


class ValidationFailure(EntryServiceError):
    """Input passed schema checks but still cannot be persisted."""

    status_code = 422
    code = "validation_failed"
    default_message = "Validation failed"


class InternalFailure(EntryServiceError):
    """Unexpected storage or infrastructure failure."""
