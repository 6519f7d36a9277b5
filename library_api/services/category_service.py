"""
Library API — Category Service
================================

What:  Business logic for category CRUD.
Why:   Keeps HTTP concerns in the routers and store concerns here.
How:   Each method receives the request's AsyncSession, performs one to three
       store operations, and returns response models.

Error Handling Strategy:
    IntegrityError on insert/update → DuplicateKeyError (name already taken)
    Missing row                     → NotFoundError
    Any other SQLAlchemyError       → DatabaseError (details logged only)
"""

import logging
import uuid
from typing import Any, Dict, List

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from library_api.exceptions import DatabaseError, DuplicateKeyError, NotFoundError
from library_api.models.category import Category
from library_api.schemas.category import (
    CategoryCreate,
    CategoryMutationResponse,
    CategoryResponse,
    CategoryUpdate,
)
from library_api.services.category_integrity import category_integrity

logger = logging.getLogger(__name__)

DUPLICATE_NAME_MESSAGE = "Category name already exists."


def to_category_response(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        description=category.description,
        book_count=category.book_count,
        created_at=category.created_at,
        updated_at=category.updated_at,
    )


class CategoryService:
    """
    Responsibilities:
        - create_category(): insert with book_count = 0
        - list_categories(): newest first
        - get_category(): single lookup with not-found handling
        - update_category(): partial name/description update, no recount
        - delete_category(): delegates to the integrity maintainer's guarded delete
    """

    async def create_category(self, db: AsyncSession, payload: CategoryCreate) -> CategoryResponse:
        category = Category(name=payload.name, description=payload.description, book_count=0)
        try:
            db.add(category)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicateKeyError(message=DUPLICATE_NAME_MESSAGE, field="name")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error creating category: %s", str(e))
            raise DatabaseError(message="Could not create the category. Please try again.")

        logger.info("Category created: %s (%s)", category.id, category.name)
        return to_category_response(category)

    async def list_categories(self, db: AsyncSession) -> List[CategoryResponse]:
        try:
            result = await db.execute(select(Category).order_by(desc(Category.created_at)))
            categories = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing categories: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve categories. Please try again.")
        return [to_category_response(c) for c in categories]

    async def get_category(self, db: AsyncSession, category_id: uuid.UUID) -> CategoryResponse:
        try:
            category = await db.get(Category, category_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching category %s: %s", category_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the category. Please try again.",
                context={"category_id": str(category_id)},
            )
        if category is None:
            raise NotFoundError(resource="category", resource_id=str(category_id))
        return to_category_response(category)

    async def update_category(
        self,
        db: AsyncSession,
        category_id: uuid.UUID,
        payload: CategoryUpdate,
    ) -> CategoryMutationResponse:
        """Apply only the fields present in the request body; book_count is untouched."""
        updates: Dict[str, Any] = payload.model_dump(exclude_unset=True)

        try:
            category = await db.get(Category, category_id)
            if category is None:
                raise NotFoundError(resource="category", resource_id=str(category_id))

            for field, value in updates.items():
                setattr(category, field, value)
            await db.commit()
        except NotFoundError:
            raise
        except IntegrityError:
            await db.rollback()
            raise DuplicateKeyError(message=DUPLICATE_NAME_MESSAGE, field="name")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error updating category %s: %s", category_id, str(e))
            raise DatabaseError(
                message="Could not update the category. Please try again.",
                context={"category_id": str(category_id)},
            )

        logger.info("Category %s updated (%s)", category_id, ", ".join(updates) or "no fields")
        return CategoryMutationResponse(
            message="Category updated successfully.",
            category=to_category_response(category),
        )

    async def delete_category(self, db: AsyncSession, category_id: uuid.UUID) -> CategoryMutationResponse:
        category = await category_integrity.guarded_delete(db, category_id)
        return CategoryMutationResponse(
            message="Category deleted successfully.",
            category=to_category_response(category),
        )


category_service = CategoryService()
