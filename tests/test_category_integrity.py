"""
Library API — Category-Integrity Maintainer Tests
===================================================

What we test:
    ✅ recompute writes a fresh count (not an increment)
    ✅ recompute is idempotent and heals drift
    ✅ recompute on a vanished category is a harmless no-op
    ✅ store failures during recompute are reported, not raised
    ✅ guarded_delete refuses categories with books and deletes empty ones
"""

import uuid

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from library_api.exceptions import NotFoundError, ReferentialConflictError
from library_api.models.book import Book
from library_api.models.category import Category
from library_api.services.category_integrity import CategoryIntegrityMaintainer


async def _add_category(db, name):
    category = Category(name=name)
    db.add(category)
    await db.commit()
    return category


async def _add_book(db, category, isbn):
    book = Book(title=f"Book {isbn}", author="Author", isbn=isbn, category_id=category.id)
    db.add(book)
    await db.commit()
    return book


async def _stored_book_count(db, category_id):
    return await db.scalar(select(Category.book_count).where(Category.id == category_id))


class TestRecompute:
    """Full recount semantics."""

    def setup_method(self):
        self.maintainer = CategoryIntegrityMaintainer()

    @pytest.mark.asyncio
    async def test_recompute_sets_count_of_referencing_books(self, db_session):
        fiction = await _add_category(db_session, "Fiction")
        poetry = await _add_category(db_session, "Poetry")
        await _add_book(db_session, fiction, "111")
        await _add_book(db_session, fiction, "222")
        await _add_book(db_session, poetry, "333")

        assert await self.maintainer.recompute(db_session, fiction.id) is True
        assert await self.maintainer.recompute(db_session, poetry.id) is True

        assert await _stored_book_count(db_session, fiction.id) == 2
        assert await _stored_book_count(db_session, poetry.id) == 1

    @pytest.mark.asyncio
    async def test_recompute_twice_is_idempotent(self, db_session):
        fiction = await _add_category(db_session, "Fiction")
        await _add_book(db_session, fiction, "111")

        await self.maintainer.recompute(db_session, fiction.id)
        first = await _stored_book_count(db_session, fiction.id)
        await self.maintainer.recompute(db_session, fiction.id)
        second = await _stored_book_count(db_session, fiction.id)

        assert first == second == 1

    @pytest.mark.asyncio
    async def test_recompute_heals_drifted_count(self, db_session):
        """A wrong cached value is overwritten, not adjusted."""
        fiction = await _add_category(db_session, "Fiction")
        await _add_book(db_session, fiction, "111")
        await db_session.execute(
            update(Category).where(Category.id == fiction.id).values(book_count=42)
        )
        await db_session.commit()

        await self.maintainer.recompute(db_session, fiction.id)

        assert await _stored_book_count(db_session, fiction.id) == 1

    @pytest.mark.asyncio
    async def test_recompute_missing_category_is_noop(self, db_session):
        assert await self.maintainer.recompute(db_session, uuid.uuid4()) is True

    @pytest.mark.asyncio
    async def test_recompute_none_is_ignored(self, mock_db_session):
        assert await self.maintainer.recompute(mock_db_session, None) is True
        mock_db_session.scalar.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recompute_store_failure_returns_false(self, mock_db_session):
        mock_db_session.scalar.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        ok = await self.maintainer.recompute(mock_db_session, uuid.uuid4())

        assert ok is False
        mock_db_session.rollback.assert_awaited_once()
        mock_db_session.commit.assert_not_awaited()


class TestRecomputeMany:

    def setup_method(self):
        self.maintainer = CategoryIntegrityMaintainer()

    @pytest.mark.asyncio
    async def test_duplicates_and_none_are_skipped(self, db_session):
        fiction = await _add_category(db_session, "Fiction")
        await _add_book(db_session, fiction, "111")

        stale = await self.maintainer.recompute_many(db_session, [fiction.id, None, fiction.id])

        assert stale == []
        assert await _stored_book_count(db_session, fiction.id) == 1

    @pytest.mark.asyncio
    async def test_every_category_is_attempted_and_failures_reported(self, mock_db_session):
        first, second = uuid.uuid4(), uuid.uuid4()
        mock_db_session.scalar.side_effect = [
            OperationalError("SELECT", {}, Exception("timeout")),
            3,
        ]

        stale = await self.maintainer.recompute_many(mock_db_session, [first, second])

        assert stale == [first]
        assert mock_db_session.scalar.await_count == 2
        mock_db_session.commit.assert_awaited_once()


class TestGuardedDelete:

    def setup_method(self):
        self.maintainer = CategoryIntegrityMaintainer()

    @pytest.mark.asyncio
    async def test_delete_empty_category(self, db_session):
        empty = await _add_category(db_session, "Empty")

        deleted = await self.maintainer.guarded_delete(db_session, empty.id)

        assert deleted.id == empty.id
        remaining = await db_session.scalar(select(Category.id).where(Category.id == empty.id))
        assert remaining is None

    @pytest.mark.asyncio
    async def test_delete_with_books_is_refused(self, db_session):
        fiction = await _add_category(db_session, "Fiction")
        book = await _add_book(db_session, fiction, "111")
        await _add_book(db_session, fiction, "222")
        # The refused delete rolls back, which expires loaded objects
        fiction_id, book_id = fiction.id, book.id

        with pytest.raises(ReferentialConflictError) as exc_info:
            await self.maintainer.guarded_delete(db_session, fiction_id)

        assert exc_info.value.referencing_count == 2
        still_there = await db_session.scalar(select(Category.name).where(Category.id == fiction_id))
        assert still_there == "Fiction"
        book_category = await db_session.scalar(select(Book.category_id).where(Book.id == book_id))
        assert book_category == fiction_id

    @pytest.mark.asyncio
    async def test_delete_missing_category(self, db_session):
        with pytest.raises(NotFoundError):
            await self.maintainer.guarded_delete(db_session, uuid.uuid4())
