import logging
import random
import secrets
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from book import Book, BookStatus, FIELD_NAMES, SYSTEM_FIELDS, WRITE_ONCE_FIELDS
from database import MalformedDataError, StorageUnavailableError, build_storage
from image_utils import get_random_stock_image
from query import get_dashboard_stats
from utils.validators import BookValidator

logger = logging.getLogger(__name__)

COVER_COLORS = [
    "bg-gradient-to-br from-blue-500 to-blue-600",
    "bg-gradient-to-br from-purple-500 to-purple-600",
    "bg-gradient-to-br from-green-500 to-green-600",
    "bg-gradient-to-br from-orange-500 to-orange-600",
    "bg-gradient-to-br from-red-500 to-red-600",
    "bg-gradient-to-br from-teal-500 to-teal-600",
    "bg-gradient-to-br from-pink-500 to-pink-600",
    "bg-gradient-to-br from-indigo-500 to-indigo-600",
]

SAMPLE_BOOKS: List[Dict[str, Any]] = [
    {
        "id": "1",
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "genre": "Classic Literature",
        "pages": 180,
        "status": "read",
        "rating": 4,
        "summary": (
            "A masterpiece of American literature exploring themes of decadence, idealism, "
            "and social upheaval in the Jazz Age. The story primarily concerns the mysterious "
            "millionaire Jay Gatsby and his obsession with the beautiful Daisy Buchanan. Set in "
            "the summer of 1922, the novel is a critique of the American Dream."
        ),
        "dateAdded": "2024-01-15",
        "dateRead": "2024-01-20",
        "dateReadTimestamp": "2024-01-20T14:30:00.000Z",
        "coverColor": COVER_COLORS[0],
        "imageUrl": "https://images.pexels.com/photos/159711/books-bookstore-book-reading-159711.jpeg?auto=compress&cs=tinysrgb&w=400",
    },
    {
        "id": "2",
        "title": "Dune",
        "author": "Frank Herbert",
        "genre": "Science Fiction",
        "pages": 688,
        "status": "to-read",
        "dateAdded": "2024-01-10",
        "coverColor": COVER_COLORS[1],
        "imageUrl": "https://images.pexels.com/photos/1029141/pexels-photo-1029141.jpeg?auto=compress&cs=tinysrgb&w=400",
    },
    {
        "id": "3",
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "genre": "Classic Literature",
        "pages": 376,
        "status": "read",
        "rating": 5,
        "summary": (
            "A powerful story about justice and morality set in the Depression-era South. "
            "Through the eyes of Scout Finch, we witness her father Atticus defend a Black man "
            "falsely accused of assault, while learning profound lessons about prejudice, courage, "
            "and human dignity. The novel explores the destruction of innocence and the importance "
            "of standing up for what is right."
        ),
        "dateAdded": "2024-01-05",
        "dateRead": "2024-01-12",
        "dateReadTimestamp": "2024-01-12T19:45:00.000Z",
        "coverColor": COVER_COLORS[2],
        "imageUrl": "https://images.pexels.com/photos/46274/pexels-photo-46274.jpeg?auto=compress&cs=tinysrgb&w=400",
    },
]


class ValidationError(ValueError):
    """A candidate record failed field validation. ``errors`` maps field -> message."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid book fields: {fields}")


class BookNotFoundError(LookupError):
    def __init__(self, book_id: str) -> None:
        self.book_id = book_id
        super().__init__(f"Book with id {book_id} not found.")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    # Millisecond precision with a Z suffix, e.g. 2024-01-20T14:30:00.000Z
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


TEXT_FIELDS = ("title", "author", "genre", "summary", "quotes")
# Optional fields where an empty string means absent
BLANK_AS_ABSENT = ("summary", "quotes", "imageUrl", "dateRead")


def _normalize_text(data: Dict[str, Any]) -> Dict[str, Any]:
    """Strip text fields and turn blank optional fields into None."""
    result = dict(data)
    for key in TEXT_FIELDS:
        if isinstance(result.get(key), str):
            result[key] = result[key].strip()
    for key in BLANK_AS_ABSENT:
        if result.get(key) == "":
            result[key] = None
    return result


class Library:
    """Owns the book collection and its persistence.

    The collection is always written back in full after a mutation. Mutations
    re-read the persisted collection first, so two Library objects over the
    same storage do not overwrite each other's changes.
    """

    def __init__(self, storage=None) -> None:
        self.storage = storage if storage is not None else build_storage()
        self.books: List[Book] = []
        self._initialized = False
        self._lock = threading.RLock()

    # ------------------------- Lifecycle ------------------------- #
    def initialize(self) -> "Library":
        """Load the persisted collection, seeding sample books when there is none.

        Raises StorageUnavailableError if the storage location cannot be used.
        Calling it again on an initialized library is a no-op.
        """
        with self._lock:
            if self._initialized:
                return self
            self.storage.ensure_location()
            records = self._read_records()
            if records is None:
                logger.info("No saved collection in %r; seeding %d sample books", self.storage, len(SAMPLE_BOOKS))
                self.books = [Book.from_dict(r) for r in SAMPLE_BOOKS]
                self._persist()
            else:
                self.books = records
                logger.info("Loaded %d books from %r", len(self.books), self.storage)
            self._initialized = True
            return self

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------- Queries ------------------------- #
    def list_books(self) -> List[Book]:
        with self._lock:
            self._require_initialized()
            return [b.copy() for b in self.books]

    def find_book(self, book_id: str) -> Optional[Book]:
        with self._lock:
            self._require_initialized()
            book = self._find(book_id)
            return book.copy() if book else None

    def get_statistics(self) -> Dict[str, Any]:
        return get_dashboard_stats(self.list_books())

    # ------------------------- Mutations ------------------------- #
    def add_book(self, candidate: Dict[str, Any]) -> Book:
        """Validate and append a new book. Returns the stored record.

        ``candidate`` uses persisted field names; id, dateAdded and coverColor
        are assigned here and ignored if supplied.
        """
        data = {k: v for k, v in candidate.items() if k not in WRITE_ONCE_FIELDS | SYSTEM_FIELDS}
        self._reject_unknown_fields(data)
        data = {k: v for k, v in _normalize_text(data).items() if v is not None}

        errors = BookValidator.validate(data)
        if errors:
            raise ValidationError(errors)

        with self._lock:
            self._sync()
            now = _now()
            data["id"] = self._new_id()
            data["dateAdded"] = now.date().isoformat()
            data["coverColor"] = random.choice(COVER_COLORS)
            if not data.get("imageUrl"):
                data["imageUrl"] = get_random_stock_image()
            if data["status"] == BookStatus.READ.value:
                data["dateReadTimestamp"] = _timestamp(now)
            book = Book.from_dict(data)
            self.books.append(book)
            self._persist()
            logger.info("Added book %s (%s)", book.id, book.title)
            return book.copy()

    def update_book(self, book_id: str, updates: Dict[str, Any]) -> Book:
        """Merge ``updates`` onto a book and persist.

        Keys absent from ``updates`` are left untouched; a ``None`` value clears
        an optional field. Setting status to read stamps dateReadTimestamp if
        the book has none; setting status to to-read clears rating, dateRead
        and dateReadTimestamp.
        """
        return self._apply_update(book_id, updates)

    def remove_book(self, book_id: str) -> bool:
        """Delete a book by id. Deleting a missing id is not an error; returns whether one was removed."""
        with self._lock:
            self._sync()
            remaining = [b for b in self.books if b.id != book_id]
            removed = len(remaining) != len(self.books)
            self.books = remaining
            self._persist()
            if removed:
                logger.info("Removed book %s", book_id)
            else:
                logger.debug("Remove of unknown book %s ignored", book_id)
            return removed

    def mark_as_read(self, book_id: str, rating: Optional[int] = None, summary: Optional[str] = None) -> Book:
        """Mark a book read today with an optional rating and summary.

        Unlike update_book, this always stamps dateReadTimestamp with the
        current time.
        """
        now = _now()
        return self._apply_update(book_id, {
            "status": BookStatus.READ.value,
            "dateRead": now.date().isoformat(),
            "rating": rating,
            "summary": summary,
        }, read_at=now)

    def mark_as_to_read(self, book_id: str) -> Book:
        return self.update_book(book_id, {"status": BookStatus.TO_READ.value})

    # ------------------------- Internals ------------------------- #
    def _apply_update(self, book_id: str, updates: Dict[str, Any], read_at: Optional[datetime] = None) -> Book:
        self._reject_unknown_fields(updates)
        with self._lock:
            self._sync()
            book = self._find(book_id)
            if book is None:
                raise BookNotFoundError(book_id)

            ignored = [k for k in updates if k in WRITE_ONCE_FIELDS | SYSTEM_FIELDS]
            if ignored:
                logger.debug("Ignoring read-only fields on update of %s: %s", book_id, ignored)
            patch = _normalize_text(
                {k: v for k, v in updates.items() if k not in WRITE_ONCE_FIELDS | SYSTEM_FIELDS}
            )

            merged = book.to_dict()
            for key, value in patch.items():
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value

            status = patch.get("status")
            if read_at is not None:
                merged["dateReadTimestamp"] = _timestamp(read_at)
            elif status == BookStatus.READ.value and not book.date_read_timestamp:
                merged["dateReadTimestamp"] = _timestamp(_now())
            elif status == BookStatus.TO_READ.value:
                for key in ("rating", "dateRead", "dateReadTimestamp"):
                    merged.pop(key, None)

            errors = BookValidator.validate(merged)
            if errors:
                raise ValidationError(errors)
            updated = Book.from_dict(merged)
            self.books = [updated if b.id == book_id else b for b in self.books]
            self._persist()
            logger.info("Updated book %s", book_id)
            return updated.copy()

    def _require_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def _find(self, book_id: str) -> Optional[Book]:
        for book in self.books:
            if book.id == book_id:
                return book
        return None

    def _new_id(self) -> str:
        existing = {b.id for b in self.books}
        while True:
            candidate = secrets.token_hex(6)
            if candidate not in existing:
                return candidate

    @staticmethod
    def _reject_unknown_fields(data: Dict[str, Any]) -> None:
        unknown = [k for k in data if k not in FIELD_NAMES]
        if unknown:
            raise ValidationError({k: "Unknown field" for k in unknown})

    def _read_records(self) -> Optional[List[Book]]:
        try:
            records = self.storage.load()
        except MalformedDataError as e:
            logger.warning("Saved collection is malformed and will be replaced: %s", e)
            return None
        if records is None:
            return None
        try:
            return [Book.from_dict(r) for r in records]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Saved collection has invalid records and will be replaced: %s", e)
            return None

    def _sync(self) -> None:
        """Re-read the persisted collection before a mutation."""
        self._require_initialized()
        records = self._read_records()
        if records is not None:
            self.books = records

    def _persist(self) -> None:
        self.storage.save([b.to_dict() for b in self.books])


__all__ = [
    "Library",
    "ValidationError",
    "BookNotFoundError",
    "StorageUnavailableError",
    "MalformedDataError",
    "COVER_COLORS",
    "SAMPLE_BOOKS",
]
