"""
Library API — Category-Integrity Maintainer
=============================================

What:  Keeps Category.book_count equal to the number of books referencing the
       category, and refuses to delete a category that still has books.
Who:   Called by BookService after every book create/update/delete, and by
       CategoryService for deletes.

Recount Strategy:
    recompute() always runs a fresh COUNT(*) and overwrites book_count. It
    never adds or subtracts one. Any drift left behind by a failed recount or
    by concurrent writers is corrected the next time the category is touched.

    The recount runs after the book write has been committed and is
    committed on its own. If it fails, only the recount is rolled back; the
    book write stands and the failure is logged and reported to the caller.

    Trigger table (enforced by BookService):
        create                      → new category
        update, same category       → current category
        update, category A → B      → A and B
        delete                      → former category

Guarded Delete:
    A single conditional statement

        DELETE FROM categories
        WHERE id = :id AND NOT EXISTS (SELECT 1 FROM books WHERE category_id = :id)

    so the "has books?" check and the delete cannot be split by a concurrent
    book insert. The books.category_id foreign key (ON DELETE RESTRICT) backs
    this up at the store level.
"""

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from library_api.exceptions import DatabaseError, NotFoundError, ReferentialConflictError
from library_api.models.book import Book
from library_api.models.category import Category

logger = logging.getLogger(__name__)


class CategoryIntegrityMaintainer:
    """Stateless; one shared instance serves every request."""

    async def count_books(self, db: AsyncSession, category_id: uuid.UUID) -> int:
        """Number of books whose category_id equals `category_id`."""
        total = await db.scalar(
            select(func.count(Book.id)).where(Book.category_id == category_id)
        )
        return total or 0

    async def recompute(self, db: AsyncSession, category_id: Optional[uuid.UUID]) -> bool:
        """
        Overwrite the category's book_count with a fresh count.

        Returns True when the recount was stored (or there was nothing to do)
        and False when the store failed. Never raises for store errors: the
        book write that triggered the recount has already been committed.

        A category that no longer exists matches zero rows and is a no-op.
        """
        if category_id is None:
            return True

        try:
            total = await self.count_books(db, category_id)
            result = await db.execute(
                update(Category)
                .where(Category.id == category_id)
                .values(book_count=total)
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Book count recompute failed for category %s: %s",
                category_id,
                str(e),
                exc_info=True,
            )
            return False

        if result.rowcount == 0:
            logger.info("Skipped book count recompute: category %s no longer exists", category_id)
        else:
            logger.debug("Category %s book_count set to %d", category_id, total)
        return True

    async def recompute_many(
        self,
        db: AsyncSession,
        category_ids: Iterable[Optional[uuid.UUID]],
    ) -> List[uuid.UUID]:
        """
        Recompute each distinct category in order.

        Every id is attempted even if an earlier one fails. Returns the ids
        whose counts could not be refreshed (empty list on full success).
        """
        stale: List[uuid.UUID] = []
        for category_id in dict.fromkeys(category_ids):
            if category_id is None:
                continue
            if not await self.recompute(db, category_id):
                stale.append(category_id)

        if stale:
            logger.warning(
                "Book counts left stale for %d categories: %s",
                len(stale),
                ", ".join(str(c) for c in stale),
            )
        return stale

    async def guarded_delete(self, db: AsyncSession, category_id: uuid.UUID) -> Category:
        """
        Delete the category only if no book references it.

        Returns:
            The deleted Category (detached snapshot of its last state).

        Raises:
            NotFoundError: the category does not exist (→ 404)
            ReferentialConflictError: at least one book references it (→ 409)
            DatabaseError: the store failed (→ 500)
        """
        try:
            category = await db.get(Category, category_id)
            if category is None:
                raise NotFoundError(resource="category", resource_id=str(category_id))

            result = await db.execute(
                delete(Category)
                .where(
                    Category.id == category_id,
                    ~exists().where(Book.category_id == category_id),
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                await db.rollback()
                referencing = await self.count_books(db, category_id)
                if referencing == 0:
                    # Deleted by someone else between the lookup and the delete
                    raise NotFoundError(resource="category", resource_id=str(category_id))
                logger.info(
                    "Refused to delete category %s: %d books still assigned",
                    category_id,
                    referencing,
                )
                raise ReferentialConflictError(
                    referencing_count=referencing,
                    context={"category_id": str(category_id)},
                )

            await db.commit()
            # Keep the loaded snapshot for the response; drop it from the identity map
            db.expunge(category)
            logger.info("Category %s deleted", category_id)
            return category

        except (NotFoundError, ReferentialConflictError):
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error deleting category %s: %s", category_id, str(e))
            raise DatabaseError(
                message="Could not delete the category. Please try again.",
                context={"category_id": str(category_id)},
            )


category_integrity = CategoryIntegrityMaintainer()
