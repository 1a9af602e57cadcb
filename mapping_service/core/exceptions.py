"""Custom exception hierarchy."""

from typing import Any, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class StorageError(DatabaseError):
    """Raised when the mapping store fails for a reason other than a key conflict."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class NotFoundError(AppError):
    """Raised when a direct lookup finds no mapping."""
    pass


class DuplicateMappingError(AppError):
    """Raised when a mapping would break legacy or modern key uniqueness.

    ``existing`` is the stored mapping that already owns the key (None only when
    a concurrent writer won the race and the row could not be re-read),
    ``duplicate`` is the rejected candidate and ``level`` names the collection
    of a composite request the candidate belongs to.
    """
    def __init__(
        self,
        message: str,
        existing: Optional[Any],
        duplicate: Any,
        kind: str,
        level: Optional[str] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.existing = existing
        self.duplicate = duplicate
        self.kind = kind
        self.level = level
