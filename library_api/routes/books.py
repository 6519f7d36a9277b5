"""
Library API — Book Route Handlers
===================================

What:  POST/GET /api/books and GET/PUT/DELETE /api/books/{id}.

Partial failure reporting:
    Book writes succeed even if the follow-up category recount fails. When
    that happens the response carries an X-Stale-Categories header listing
    the category ids whose bookCount could not be refreshed. The next write
    touching those categories corrects them.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_api.database import get_db_session
from library_api.schemas.book import BookCreate, BookMutationResponse, BookResponse, BookUpdate
from library_api.schemas.common import ErrorResponse
from library_api.services.book_service import book_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/books", tags=["Books"])

STALE_CATEGORIES_HEADER = "X-Stale-Categories"


def _flag_stale(response: Response, stale: List[UUID]) -> None:
    if stale:
        response.headers[STALE_CATEGORIES_HEADER] = ",".join(str(c) for c in stale)


@router.post(
    "",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid body", "model": ErrorResponse},
        404: {"description": "Category not found", "model": ErrorResponse},
        409: {"description": "ISBN already exists", "model": ErrorResponse},
    },
    summary="Create a book in an existing category",
)
async def create_book(
    payload: BookCreate,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> BookResponse:
    book, stale = await book_service.create_book(db, payload)
    _flag_stale(response, stale)
    return book


@router.get(
    "",
    response_model=List[BookResponse],
    summary="List books, newest first",
)
async def list_books(
    category_id: Optional[UUID] = Query(
        default=None,
        alias="categoryId",
        description="Only books in this category",
    ),
    search: Optional[str] = Query(
        default=None,
        max_length=200,
        description="Case-insensitive match on title, author or ISBN",
    ),
    db: AsyncSession = Depends(get_db_session),
) -> List[BookResponse]:
    return await book_service.list_books(db, category_id=category_id, search=search)


@router.get(
    "/{book_id}",
    response_model=BookResponse,
    responses={404: {"description": "Book not found", "model": ErrorResponse}},
    summary="Get a book by ID",
)
async def get_book(
    book_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> BookResponse:
    return await book_service.get_book(db, book_id)


@router.put(
    "/{book_id}",
    response_model=BookMutationResponse,
    responses={
        400: {"description": "Invalid body", "model": ErrorResponse},
        404: {"description": "Book or new category not found", "model": ErrorResponse},
        409: {"description": "ISBN already exists", "model": ErrorResponse},
    },
    summary="Update a book, optionally moving it to another category",
)
async def update_book(
    book_id: UUID,
    payload: BookUpdate,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> BookMutationResponse:
    result, stale = await book_service.update_book(db, book_id, payload)
    _flag_stale(response, stale)
    return result


@router.delete(
    "/{book_id}",
    response_model=BookMutationResponse,
    responses={404: {"description": "Book not found", "model": ErrorResponse}},
    summary="Delete a book",
)
async def delete_book(
    book_id: UUID,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> BookMutationResponse:
    result, stale = await book_service.delete_book(db, book_id)
    _flag_stale(response, stale)
    return result
