"""
Library API — Custom Exception Hierarchy
==========================================

What:  Application-specific exceptions for the different error scenarios.
Why:   Targeted error handling with the right HTTP status code and a
       user-safe message, without try/except blocks in every route.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into
       structured JSON error responses.
Who:   Raised by services and middleware; caught by global handlers.

Exception Hierarchy:
    LibraryError (base)
    ├── NotFoundError                → 404 Not Found
    ├── ConflictError                → 409 Conflict
    │   ├── DuplicateKeyError        → 409 (unique name / isbn)
    │   └── ReferentialConflictError → 409 (category still has books)
    ├── DatabaseError                → 500 Internal Server Error
    └── RateLimitExceededError       → 429 Too Many Requests
"""

from typing import Any, Dict, Optional


class LibraryError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class NotFoundError(LibraryError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert that into
    NotFoundError so the handler can answer 404.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"{resource.capitalize()} not found."
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class ConflictError(LibraryError):
    """The request conflicts with the current state of the store."""

    error_code = "conflict"


class DuplicateKeyError(ConflictError):
    """
    Raised when a write would violate a uniqueness constraint.

    When:    Category name or book ISBN already taken.
    """

    error_code = "duplicate_key"

    def __init__(
        self,
        message: str = "Resource already exists.",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ReferentialConflictError(ConflictError):
    """
    Raised when a delete is refused because dependent records still exist.

    When:    DELETE /api/categories/{id} while books reference the category.
    """

    error_code = "referential_conflict"

    def __init__(
        self,
        message: str = (
            "Cannot delete category while books are still assigned. "
            "Reassign or remove them first."
        ),
        referencing_count: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if referencing_count is not None:
            ctx["book_count"] = referencing_count
        super().__init__(message=message, context=ctx)
        self.referencing_count = referencing_count


class DatabaseError(LibraryError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. Driver messages
    and SQL stay in the server log.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(LibraryError):
    """Raised when a client exceeds the per-IP request rate limit."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
