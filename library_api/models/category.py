"""
Library API — Category SQLAlchemy Model
=========================================

What:  ORM model representing the `categories` table.
Who:   Used by CategoryService, the category-integrity maintainer, and Alembic.

Table Design:
    - UUID primary key generated in Python (portable across PostgreSQL and SQLite)
    - name: unique, case-sensitive
    - book_count: cached number of books referencing this category. Never
      incremented in place; always overwritten by a full recount
      (see services/category_integrity.py).
"""

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from library_api.database import Base

if TYPE_CHECKING:
    from library_api.models.book import Book


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(Base):
    """
    A book category.

    Lifecycle:
        1. Created with book_count = 0
        2. name/description updated in place; book_count untouched
        3. book_count rewritten after every book create/update/delete that
           touches this category
        4. Deleted only while no book references it
    """

    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        unique=True,
        comment="Display name, unique across categories",
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    book_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Cached count of books referencing this category",
    )

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

    # No cascade: categories with books cannot be deleted
    books: Mapped[List["Book"]] = relationship(
        back_populates="category",
        passive_deletes="all",
    )

    __table_args__ = (
        CheckConstraint("book_count >= 0", name="ck_categories_book_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name='{self.name}', book_count={self.book_count})>"
