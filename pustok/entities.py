import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, String
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .lifecycle import Lifecycle


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditMixin:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def lifecycle(self) -> Lifecycle:
        state = sa_inspect(self)
        if state.was_deleted or state.deleted:
            return Lifecycle.DELETED
        if state.transient or state.pending:
            return Lifecycle.NEW
        return Lifecycle.ACTIVE if self.is_active else Lifecycle.INACTIVE

    def stamp(self, now: datetime) -> None:
        if self.created_at is None:
            self.created_at = now
        self.modified_at = now

    def touch(self, now: datetime) -> None:
        # created_at is immutable, so a skewed clock must not put modified_at before it
        if self.created_at is not None and _aware(now) < _aware(self.created_at):
            now = self.created_at
        self.modified_at = now


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class ImageKind(str, enum.Enum):
    COVER = "cover"
    BACK = "back"
    DETAIL = "detail"


class BookRelation(str, enum.Enum):
    GENRE = "genre"
    AUTHOR = "author"
    IMAGES = "images"


class Slider(AuditMixin, Base):
    __tablename__ = "sliders"

    title1: Mapped[str] = mapped_column(String(20), nullable=False)
    title2: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(150), nullable=False)
    redirect_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    redirect_url_text: Mapped[str] = mapped_column(String(40), nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class Genre(AuditMixin, Base):
    __tablename__ = "genres"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    books: Mapped[list["Book"]] = relationship(back_populates="genre")


class Author(AuditMixin, Base):
    __tablename__ = "authors"

    full_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    books: Mapped[list["Book"]] = relationship(back_populates="author")


class Book(AuditMixin, Base):
    __tablename__ = "books"

    genre_id: Mapped[int] = mapped_column(ForeignKey("genres.id"), nullable=False)
    author_id: Mapped[int] = mapped_column(ForeignKey("authors.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(350), nullable=True)
    book_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    cost_price: Mapped[float] = mapped_column(Float, nullable=False)
    sale_price: Mapped[float] = mapped_column(Float, nullable=False)
    discount_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_new: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_best_seller: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    stock_count: Mapped[int] = mapped_column(Integer, nullable=False)

    genre: Mapped[Genre] = relationship(back_populates="books")
    author: Mapped[Author] = relationship(back_populates="books")
    images: Mapped[list["BookImage"]] = relationship(
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BookImage.id",
    )


class BookImage(AuditMixin, Base):
    __tablename__ = "book_images"

    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    image_url: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[ImageKind] = mapped_column(
        Enum(ImageKind, native_enum=False, length=10, values_callable=lambda kinds: [k.value for k in kinds]),
        default=ImageKind.DETAIL,
        nullable=False,
    )

    book: Mapped[Book] = relationship(back_populates="images")
