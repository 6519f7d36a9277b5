"""
Library API — Category Route Handlers
=======================================

What:  POST/GET /api/categories and GET/PUT/DELETE /api/categories/{id}.
How:   Bodies are validated by the pydantic input models before any store
       access; malformed UUIDs in the path fail validation (→ 400). Handlers
       delegate to CategoryService and contain no error handling of their own.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_api.database import get_db_session
from library_api.schemas.category import (
    CategoryCreate,
    CategoryMutationResponse,
    CategoryResponse,
    CategoryUpdate,
)
from library_api.schemas.common import ErrorResponse
from library_api.services.category_service import category_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid body", "model": ErrorResponse},
        409: {"description": "Category name already exists", "model": ErrorResponse},
    },
    summary="Create a category",
)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db_session),
) -> CategoryResponse:
    return await category_service.create_category(db, payload)


@router.get(
    "",
    response_model=List[CategoryResponse],
    summary="List categories, newest first",
)
async def list_categories(db: AsyncSession = Depends(get_db_session)) -> List[CategoryResponse]:
    return await category_service.list_categories(db)


@router.get(
    "/{category_id}",
    response_model=CategoryResponse,
    responses={404: {"description": "Category not found", "model": ErrorResponse}},
    summary="Get a category by ID",
)
async def get_category(
    category_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> CategoryResponse:
    return await category_service.get_category(db, category_id)


@router.put(
    "/{category_id}",
    response_model=CategoryMutationResponse,
    responses={
        400: {"description": "Invalid body", "model": ErrorResponse},
        404: {"description": "Category not found", "model": ErrorResponse},
        409: {"description": "Category name already exists", "model": ErrorResponse},
    },
    summary="Update a category's name and/or description",
)
async def update_category(
    category_id: UUID,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> CategoryMutationResponse:
    return await category_service.update_category(db, category_id, payload)


@router.delete(
    "/{category_id}",
    response_model=CategoryMutationResponse,
    responses={
        404: {"description": "Category not found", "model": ErrorResponse},
        409: {"description": "Books are still assigned to the category", "model": ErrorResponse},
    },
    summary="Delete a category that has no books",
    description=(
        "Deletion is refused with 409 while any book references the category. "
        "Reassign or remove those books first."
    ),
)
async def delete_category(
    category_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> CategoryMutationResponse:
    return await category_service.delete_category(db, category_id)
