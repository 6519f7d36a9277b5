"""
Library API — Category Request/Response Schemas
=================================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from library_api.schemas.common import CamelModel, InputModel


class CategoryCreate(InputModel):
    """Body of POST /api/categories."""
    name: str = Field(min_length=1, max_length=200, description="Unique category name")
    description: Optional[str] = Field(default=None, description="Free-text description")


class CategoryUpdate(InputModel):
    """
    Body of PUT /api/categories/{id}.

    Only keys present in the body are applied. `name` may be omitted but not
    set to null or blank.
    """
    name: str = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None)


class CategoryResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    book_count: int = Field(description="Number of books assigned to this category")
    created_at: datetime
    updated_at: datetime


class CategorySummary(CamelModel):
    """Category as embedded in a book response."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None


class CategoryMutationResponse(CamelModel):
    """Returned by PUT and DELETE on a category."""
    message: str
    category: CategoryResponse
