"""
Library API — Shared Pydantic Schemas
=======================================

What:  Base model with the camelCase wire convention, plus the error and
       health response models shared by every router.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Response base: snake_case attributes in Python, camelCase on the wire
    (book_count → bookCount, published_year → publishedYear).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class InputModel(BaseModel):
    """
    Request body base.

    Strings are trimmed before length checks run, so "   " fails a
    min_length=1 constraint. Unknown keys are ignored.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
    )


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Request validation failed",
            "details": {"fields": [{"field": "title", "message": "Field required"}]},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and store status."""
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Store connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
