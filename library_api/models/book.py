"""
Library API — Book SQLAlchemy Model
=====================================

What:  ORM model representing the `books` table.
Who:   Used by BookService, the category-integrity maintainer, and Alembic.

Table Design:
    - isbn: unique across all books
    - category_id: required foreign key to categories.id with ON DELETE
      RESTRICT, so the store itself refuses to orphan a book
    - idx_books_category_id: every recount is a COUNT(*) filtered on this column
"""

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from library_api.database import Base

if TYPE_CHECKING:
    from library_api.models.category import Category


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Book(Base):
    """A catalog entry belonging to exactly one category."""

    __tablename__ = "books"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)

    isbn: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
    )

    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
    )

    published_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    stock: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # lazy="raise": async sessions cannot lazy-load; callers eager-load or assign
    category: Mapped["Category"] = relationship(back_populates="books", lazy="raise")

    __table_args__ = (
        Index("idx_books_category_id", "category_id"),
        CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),
        CheckConstraint(
            "published_year IS NULL OR published_year >= 0",
            name="ck_books_published_year_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, isbn='{self.isbn}', category_id={self.category_id})>"
