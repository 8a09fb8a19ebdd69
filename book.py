from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List


class BookStatus(str, Enum):
    TO_READ = "to-read"
    READ = "read"


# Persisted (camelCase) field name -> attribute name
FIELD_NAMES: Dict[str, str] = {
    "id": "id",
    "title": "title",
    "author": "author",
    "genre": "genre",
    "pages": "pages",
    "status": "status",
    "rating": "rating",
    "summary": "summary",
    "quotes": "quotes",
    "dateAdded": "date_added",
    "dateRead": "date_read",
    "dateReadTimestamp": "date_read_timestamp",
    "coverColor": "cover_color",
    "imageUrl": "image_url",
}

# Assigned once by the store at creation time.
WRITE_ONCE_FIELDS = frozenset({"id", "dateAdded", "coverColor"})
# Assigned by the store on status transitions.
SYSTEM_FIELDS = frozenset({"dateReadTimestamp"})


class Book:
    """Represents a single book record in the collection."""

    def __init__(self, id: str, title: str, author: str, genre: str, pages: int,
                 status: str = BookStatus.TO_READ.value, date_added: str = "",
                 cover_color: str = "", rating: int | None = None,
                 summary: str | None = None, quotes: str | None = None,
                 date_read: str | None = None, date_read_timestamp: str | None = None,
                 image_url: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = genre.strip()
        self.pages = pages
        self.status = BookStatus(status).value
        self.rating = rating
        self.summary = summary
        self.quotes = quotes
        self.date_added = date_added
        self.date_read = date_read
        self.date_read_timestamp = date_read_timestamp
        self.cover_color = cover_color
        self.image_url = image_url

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.status})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    @property
    def is_read(self) -> bool:
        return self.status == BookStatus.READ.value

    def quote_list(self) -> List[str]:
        """Quotations stored one per line; blank lines are dropped."""
        if not self.quotes:
            return []
        return [line.strip() for line in self.quotes.split("\n") if line.strip()]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using persisted field names. Absent optional fields are omitted."""
        data: Dict[str, Any] = {}
        for key, attr in FIELD_NAMES.items():
            value = getattr(self, attr)
            if value is None:
                continue
            data[key] = value
        return data

    def copy(self) -> "Book":
        return Book.from_dict(self.to_dict())

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Book":
        return Book(
            id=str(data["id"]),
            title=data["title"],
            author=data["author"],
            genre=data["genre"],
            pages=data["pages"],
            status=data.get("status", BookStatus.TO_READ.value),
            date_added=data.get("dateAdded", ""),
            cover_color=data.get("coverColor", ""),
            rating=data.get("rating"),
            summary=data.get("summary"),
            quotes=data.get("quotes"),
            date_read=data.get("dateRead"),
            date_read_timestamp=data.get("dateReadTimestamp"),
            image_url=data.get("imageUrl"),
        )
