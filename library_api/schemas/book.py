"""
Library API — Book Request/Response Schemas
=============================================

Input accepts the category reference as either `categoryId` or `category`
(categoryId wins when both are sent). Output embeds the category's id, name
and description instead of the bare reference.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, Field

from library_api.schemas.category import CategorySummary
from library_api.schemas.common import CamelModel, InputModel

_CATEGORY_ALIASES = AliasChoices("categoryId", "category", "category_id")
_PUBLISHED_YEAR_ALIASES = AliasChoices("publishedYear", "published_year")

# books.published_year and books.stock are 32-bit INTEGER columns
MAX_INT_COLUMN = 2_147_483_647


class BookCreate(InputModel):
    """Body of POST /api/books."""
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    isbn: str = Field(min_length=1, max_length=32)
    category_id: uuid.UUID = Field(validation_alias=_CATEGORY_ALIASES)
    published_year: Optional[int] = Field(
        default=None, ge=0, le=MAX_INT_COLUMN, validation_alias=_PUBLISHED_YEAR_ALIASES
    )
    stock: int = Field(default=0, ge=0, le=MAX_INT_COLUMN)
    description: Optional[str] = None


class BookUpdate(InputModel):
    """
    Body of PUT /api/books/{id}.

    Every field is optional; only keys present in the body are applied.
    Required columns may be omitted but not nulled.
    """
    title: str = Field(default=None, min_length=1, max_length=255)
    author: str = Field(default=None, min_length=1, max_length=255)
    isbn: str = Field(default=None, min_length=1, max_length=32)
    category_id: uuid.UUID = Field(default=None, validation_alias=_CATEGORY_ALIASES)
    published_year: Optional[int] = Field(
        default=None, ge=0, le=MAX_INT_COLUMN, validation_alias=_PUBLISHED_YEAR_ALIASES
    )
    stock: int = Field(default=None, ge=0, le=MAX_INT_COLUMN)
    description: Optional[str] = None


class BookResponse(CamelModel):
    id: uuid.UUID
    title: str
    author: str
    isbn: str
    category: CategorySummary
    published_year: Optional[int] = None
    stock: int
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BookMutationResponse(CamelModel):
    """Returned by PUT and DELETE on a book."""
    message: str
    book: BookResponse
