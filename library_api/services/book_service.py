"""
Library API — Book Service
============================

What:  Business logic for book CRUD, including the category book-count
       recounts each write triggers.
Who:   Called by the /api/books route handlers.

Write Flow (create / update / delete):
    ┌──────────────┐    ┌────────────┐    ┌────────────────┐    ┌──────────────┐
    │ resolve      │───▶│ book write │───▶│ build response │───▶│ recount the  │
    │ category(s)  │    │ + commit   │    │ snapshot       │    │ category(s)  │
    └──────────────┘    └────────────┘    └────────────────┘    └──────────────┘

    The book write is the transaction of record. Recounts run afterwards in
    their own commits; a failed recount is logged, the id is returned in the
    `stale` list, and the book write is not undone. The response is built
    before recounting because a failed recount rolls the session back, which
    expires every loaded object.

Every write method returns (response, stale_category_ids).
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from library_api.exceptions import DatabaseError, DuplicateKeyError, NotFoundError
from library_api.models.book import Book
from library_api.models.category import Category
from library_api.schemas.book import BookCreate, BookMutationResponse, BookResponse, BookUpdate
from library_api.schemas.category import CategorySummary
from library_api.services.category_integrity import category_integrity

logger = logging.getLogger(__name__)

DUPLICATE_ISBN_MESSAGE = "ISBN already exists."


def to_book_response(book: Book, category: Category) -> BookResponse:
    return BookResponse(
        id=book.id,
        title=book.title,
        author=book.author,
        isbn=book.isbn,
        category=CategorySummary(
            id=category.id,
            name=category.name,
            description=category.description,
        ),
        published_year=book.published_year,
        stock=book.stock,
        description=book.description,
        created_at=book.created_at,
        updated_at=book.updated_at,
    )


class BookService:
    """
    Responsibilities:
        - create_book(): insert into an existing category, recount it
        - list_books(): filter by category and/or search text, newest first
        - get_book(): single lookup with its category
        - update_book(): partial update, optional category move, recount old+new
        - delete_book(): delete, recount the former category
    """

    async def _get_category(self, db: AsyncSession, category_id: uuid.UUID) -> Optional[Category]:
        return await db.get(Category, category_id)

    async def _integrity_failure(
        self,
        db: AsyncSession,
        category_id: uuid.UUID,
        not_found_message: str,
    ) -> Exception:
        """
        Classify an IntegrityError raised by a book write.

        The category can vanish between our lookup and the insert; the
        foreign key then rejects the row and the client gets a 404.
        Otherwise the only remaining unique constraint is the ISBN.
        """
        await db.rollback()
        if await self._get_category(db, category_id) is None:
            return NotFoundError(
                resource="category",
                resource_id=str(category_id),
                message=not_found_message,
            )
        return DuplicateKeyError(message=DUPLICATE_ISBN_MESSAGE, field="isbn")

    async def create_book(
        self,
        db: AsyncSession,
        payload: BookCreate,
    ) -> Tuple[BookResponse, List[uuid.UUID]]:
        """
        Raises:
            NotFoundError: category does not exist (→ 404)
            DuplicateKeyError: ISBN already taken (→ 409)
            DatabaseError: store failure (→ 500)
        """
        try:
            category = await self._get_category(db, payload.category_id)
            if category is None:
                raise NotFoundError(resource="category", resource_id=str(payload.category_id))

            book = Book(
                title=payload.title,
                author=payload.author,
                isbn=payload.isbn,
                category_id=category.id,
                published_year=payload.published_year,
                stock=payload.stock,
                description=payload.description,
            )
            db.add(book)
            await db.commit()
        except NotFoundError:
            raise
        except IntegrityError:
            raise await self._integrity_failure(db, payload.category_id, "Category not found.")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error creating book: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not create the book. Please try again.")

        logger.info("Book created: %s (isbn=%s, category=%s)", book.id, book.isbn, category.id)
        response = to_book_response(book, category)

        stale = await category_integrity.recompute_many(db, [category.id])
        return response, stale

    async def list_books(
        self,
        db: AsyncSession,
        category_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
    ) -> List[BookResponse]:
        """
        List books newest first.

        search: case-insensitive substring match against title, author or
        isbn. LIKE wildcards in the search text are matched literally.
        """
        query = select(Book).options(selectinload(Book.category))

        if category_id is not None:
            query = query.where(Book.category_id == category_id)

        if search:
            query = query.where(
                or_(
                    Book.title.icontains(search, autoescape=True),
                    Book.author.icontains(search, autoescape=True),
                    Book.isbn.icontains(search, autoescape=True),
                )
            )

        query = query.order_by(desc(Book.created_at))

        try:
            result = await db.execute(query)
            books = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing books: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not retrieve books. Please try again.")

        return [to_book_response(book, book.category) for book in books]

    async def _load_book(self, db: AsyncSession, book_id: uuid.UUID) -> Book:
        result = await db.execute(
            select(Book).options(selectinload(Book.category)).where(Book.id == book_id)
        )
        book = result.scalar_one_or_none()
        if book is None:
            raise NotFoundError(resource="book", resource_id=str(book_id))
        return book

    async def get_book(self, db: AsyncSession, book_id: uuid.UUID) -> BookResponse:
        try:
            book = await self._load_book(db, book_id)
        except NotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error fetching book %s: %s", book_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the book. Please try again.",
                context={"book_id": str(book_id)},
            )
        return to_book_response(book, book.category)

    async def update_book(
        self,
        db: AsyncSession,
        book_id: uuid.UUID,
        payload: BookUpdate,
    ) -> Tuple[BookMutationResponse, List[uuid.UUID]]:
        """
        Apply the fields present in the body. When a different category is
        supplied it must exist; both the previous and the new category are
        recounted. Otherwise only the current category is recounted.

        Raises:
            NotFoundError: book missing, or the new category missing (→ 404)
            DuplicateKeyError: ISBN already taken (→ 409)
            DatabaseError: store failure (→ 500)
        """
        updates: Dict[str, Any] = payload.model_dump(exclude_unset=True)
        incoming_category_id: Optional[uuid.UUID] = updates.pop("category_id", None)

        try:
            book = await self._load_book(db, book_id)
            previous_category_id = book.category_id
            category = book.category

            category_changed = (
                incoming_category_id is not None and incoming_category_id != previous_category_id
            )
            if category_changed:
                category = await self._get_category(db, incoming_category_id)
                if category is None:
                    raise NotFoundError(
                        resource="category",
                        resource_id=str(incoming_category_id),
                        message="New category not found.",
                    )
                book.category_id = category.id

            for field, value in updates.items():
                setattr(book, field, value)
            await db.commit()
        except NotFoundError:
            raise
        except IntegrityError:
            raise await self._integrity_failure(
                db,
                incoming_category_id or previous_category_id,
                "New category not found.",
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error updating book %s: %s", book_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not update the book. Please try again.",
                context={"book_id": str(book_id)},
            )

        if category_changed:
            logger.info("Book %s moved from category %s to %s", book_id, previous_category_id, category.id)
        response = BookMutationResponse(
            message="Book updated successfully.",
            book=to_book_response(book, category),
        )

        if category_changed:
            stale = await category_integrity.recompute_many(db, [category.id, previous_category_id])
        else:
            stale = await category_integrity.recompute_many(db, [previous_category_id])
        return response, stale

    async def delete_book(
        self,
        db: AsyncSession,
        book_id: uuid.UUID,
    ) -> Tuple[BookMutationResponse, List[uuid.UUID]]:
        try:
            book = await self._load_book(db, book_id)
            response = BookMutationResponse(
                message="Book deleted successfully.",
                book=to_book_response(book, book.category),
            )
            former_category_id = book.category_id
            await db.delete(book)
            await db.commit()
        except NotFoundError:
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error deleting book %s: %s", book_id, str(e))
            raise DatabaseError(
                message="Could not delete the book. Please try again.",
                context={"book_id": str(book_id)},
            )

        logger.info("Book %s deleted from category %s", book_id, former_category_id)
        stale = await category_integrity.recompute_many(db, [former_category_id])
        return response, stale


book_service = BookService()
