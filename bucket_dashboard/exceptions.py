"""Exception types raised by the bucket services."""

from __future__ import annotations


class BucketError(Exception):
    """Base class for errors surfaced to the dashboard.

    ``code`` mirrors the short error codes shown next to failed actions.
    """

    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BucketError):
    """A record does not exist for the given owner."""

    code = "NOT_FOUND"


class ValidationError(BucketError):
    """Input was rejected before touching the database."""

    code = "VALIDATION_ERROR"


class ConcurrencyError(BucketError):
    """An atomic operation could not complete; nothing was changed."""

    code = "CONFLICT"
