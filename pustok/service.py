import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .entities import Author, Book, BookImage, BookRelation, Genre, ImageKind, Slider, utcnow
from .errors import AssetWriteError, BookNotFound, SliderNotFound
from .lifecycle import Lifecycle, LifecycleError, toggled, transition
from .models import BookForm, ErrorCode, ServiceResult, SliderForm
from .repository import Include, Repository
from .storage import AssetStore
from .uploads import DEFAULT_IMAGE_POLICY, ImagePolicy, Upload, validate_image

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

BOOK_DETAIL_INCLUDES = (BookRelation.GENRE, BookRelation.AUTHOR, BookRelation.IMAGES)


class SliderService:
    MUTABLE_FIELDS = ("title1", "title2", "description", "redirect_url", "redirect_url_text")

    def __init__(
        self,
        session: Session,
        assets: AssetStore,
        folder: str = "uploads/sliders",
        policy: ImagePolicy = DEFAULT_IMAGE_POLICY,
        clock: Clock = utcnow,
    ):
        self.sliders = Repository(session, Slider)
        self.assets = assets
        self.folder = folder
        self.policy = policy
        self.clock = clock

    def get_by_id(self, slider_id: int) -> Slider:
        slider = self.sliders.find_by_id(slider_id)
        if slider is None:
            raise SliderNotFound(slider_id)
        return slider

    def get_single(self, predicate: Any = None) -> Optional[Slider]:
        return self.sliders.first(predicate)

    def get_all(self, predicate: Any = None, includes: Iterable[Include] = ()) -> list[Slider]:
        return self.sliders.query(predicate, includes)

    def search(self, term: str) -> list[Slider]:
        # % and _ typed by the user are matched literally
        return self.sliders.query(
            or_(
                Slider.title1.icontains(term, autoescape=True),
                Slider.title2.icontains(term, autoescape=True),
            )
        )

    def create(self, form: SliderForm, image: Optional[Upload]) -> ServiceResult:
        result = ServiceResult()
        self._check_titles(form, result)
        if not result.success:
            return result

        check = validate_image(image, self.policy)
        if not check.ok:
            return result.fail("image_file", check.reason)

        try:
            ref = self.assets.save(image, self.folder)
        except AssetWriteError:
            return result.fail(None, "An error occurred while saving the file.", ErrorCode.UNEXPECTED)

        slider = Slider(**form.model_dump(), image_url=ref)
        slider.stamp(self.clock())
        self.sliders.add(slider)
        try:
            self.sliders.save_changes()
        except SQLAlchemyError:
            self.assets.delete(self.folder, ref)
            raise

        logger.info("slider.created", extra={"slider_id": slider.id, "asset": ref})
        result.entity_id = slider.id
        return result

    def update(self, slider_id: int, form: SliderForm, image: Optional[Upload] = None) -> ServiceResult:
        result = ServiceResult(entity_id=slider_id)
        try:
            slider = self.get_by_id(slider_id)
        except SliderNotFound:
            return result.fail(None, "Slider not found.", ErrorCode.NOT_FOUND)

        self._check_titles(form, result, exclude_id=slider_id)
        if not result.success:
            return result

        new_ref = None
        if image is not None:
            check = validate_image(image, self.policy)
            if not check.ok:
                return result.fail("image_file", check.reason)
            try:
                new_ref = self.assets.save(image, self.folder)
            except AssetWriteError:
                return result.fail(None, "An error occurred while saving the file.", ErrorCode.UNEXPECTED)

        old_ref = slider.image_url
        for field in self.MUTABLE_FIELDS:
            setattr(slider, field, getattr(form, field))
        if new_ref is not None:
            slider.image_url = new_ref
        slider.touch(self.clock())

        try:
            self.sliders.save_changes()
        except SQLAlchemyError as exc:
            if new_ref is not None:
                self.assets.delete(self.folder, new_ref)
            logger.error("slider.update_failed", extra={"slider_id": slider_id, "error": str(exc)})
            raise

        if new_ref is not None and old_ref:
            self.assets.delete(self.folder, old_ref)
        logger.info("slider.updated", extra={"slider_id": slider_id, "image_replaced": new_ref is not None})
        return result

    def soft_delete(self, slider_id: int) -> Slider:
        slider = self.get_by_id(slider_id)
        slider.is_active = toggled(slider.lifecycle) is Lifecycle.ACTIVE
        slider.touch(self.clock())
        self.sliders.save_changes()
        logger.info("slider.toggled", extra={"slider_id": slider_id, "is_active": slider.is_active})
        return slider

    def delete(self, slider_id: int) -> ServiceResult:
        result = ServiceResult(entity_id=slider_id)
        slider = self.get_by_id(slider_id)
        try:
            transition(slider.lifecycle, Lifecycle.DELETED)
        except LifecycleError:
            return result.fail(
                None,
                "Slider must be deactivated before it can be permanently deleted.",
                ErrorCode.POLICY,
            )

        ref = slider.image_url
        self.sliders.remove(slider)
        self.sliders.save_changes()
        self.assets.delete(self.folder, ref)
        logger.info("slider.deleted", extra={"slider_id": slider_id})
        return result

    def _check_titles(self, form: SliderForm, result: ServiceResult, exclude_id: Optional[int] = None) -> None:
        for field, label in (("title1", "primary"), ("title2", "secondary")):
            column = getattr(Slider, field)
            predicate = func.lower(column) == getattr(form, field).lower()
            if exclude_id is not None:
                predicate = predicate & (Slider.id != exclude_id)
            if self.sliders.first(predicate) is not None:
                result.fail(field, f"A slider with this {label} title already exists.")


class BookService:
    def __init__(
        self,
        session: Session,
        assets: AssetStore,
        folder: str = "uploads/books",
        policy: ImagePolicy = DEFAULT_IMAGE_POLICY,
        clock: Clock = utcnow,
    ):
        self.books = Repository(session, Book)
        self.genres = Repository(session, Genre)
        self.authors = Repository(session, Author)
        self.assets = assets
        self.folder = folder
        self.policy = policy
        self.clock = clock

    def get_by_id(self, book_id: int) -> Book:
        book = self.books.find_by_id(book_id)
        if book is None:
            raise BookNotFound(book_id)
        return book

    def get_all(self, predicate: Any = None, includes: Iterable[Include] = ()) -> list[Book]:
        return self.books.query(predicate, includes)

    def create(
        self,
        form: BookForm,
        cover_image: Optional[Upload] = None,
        back_image: Optional[Upload] = None,
        image_files: Sequence[Upload] = (),
    ) -> ServiceResult:
        result = ServiceResult()
        self._check_references(form, result)
        if not result.success:
            return result

        pending = []
        if cover_image is not None:
            pending.append(("cover_image", ImageKind.COVER, cover_image))
        if back_image is not None:
            pending.append(("back_image", ImageKind.BACK, back_image))
        pending.extend(("image_files", ImageKind.DETAIL, upload) for upload in image_files)

        # the whole batch is rejected on the first bad file, before anything is written
        for field, _, upload in pending:
            check = validate_image(upload, self.policy)
            if not check.ok:
                return result.fail(field, check.reason)

        now = self.clock()
        book = Book(**form.model_dump())
        book.stamp(now)
        saved: list[str] = []
        try:
            for _, kind, upload in pending:
                ref = self.assets.save(upload, self.folder)
                saved.append(ref)
                image = BookImage(image_url=ref, kind=kind)
                image.stamp(now)
                book.images.append(image)
        except AssetWriteError:
            self._discard(saved)
            return result.fail(None, "An error occurred while saving the images.", ErrorCode.UNEXPECTED)

        self.books.add(book)
        try:
            self.books.save_changes()
        except SQLAlchemyError:
            self._discard(saved)
            raise

        logger.info("book.created", extra={"book_id": book.id, "images": len(saved)})
        result.entity_id = book.id
        return result

    def soft_delete(self, book_id: int) -> Book:
        book = self.get_by_id(book_id)
        book.is_active = toggled(book.lifecycle) is Lifecycle.ACTIVE
        book.touch(self.clock())
        self.books.save_changes()
        logger.info("book.toggled", extra={"book_id": book_id, "is_active": book.is_active})
        return book

    def delete(self, book_id: int) -> ServiceResult:
        result = ServiceResult(entity_id=book_id)
        book = self.get_by_id(book_id)
        try:
            transition(book.lifecycle, Lifecycle.DELETED)
        except LifecycleError:
            return result.fail(
                None,
                "Book must be deactivated before it can be permanently deleted.",
                ErrorCode.POLICY,
            )

        refs = [image.image_url for image in book.images]
        self.books.remove(book)
        self.books.save_changes()
        self._discard(refs)
        logger.info("book.deleted", extra={"book_id": book_id, "images": len(refs)})
        return result

    def _check_references(self, form: BookForm, result: ServiceResult) -> None:
        if self.genres.find_by_id(form.genre_id) is None:
            result.fail("genre_id", "Genre not found.")
        if self.authors.find_by_id(form.author_id) is None:
            result.fail("author_id", "Author not found.")
        if self.books.first(Book.book_code == form.book_code) is not None:
            result.fail("book_code", "Book code already exists.")

    def _discard(self, refs: Iterable[str]) -> None:
        for ref in refs:
            self.assets.delete(self.folder, ref)
