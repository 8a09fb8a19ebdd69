"""Read-only projections of the book list: search, sort, genres and dashboard stats.

Nothing here mutates or persists; every function takes a list of books and
returns a new list or a plain dict.
"""

from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from pyuca import Collator

from book import Book, BookStatus

SORT_FIELDS = ("dateAdded", "title", "author", "pages", "rating", "dateRead")
SORT_ORDERS = ("asc", "desc")

RECENT_LIMIT = 3


def parse_instant(value: Optional[str]) -> float:
    """Seconds since the epoch for an ISO date or datetime; 0 when absent or unparseable.

    Date-only values are taken as UTC midnight.
    """
    if not value:
        return 0.0
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            d = date.fromisoformat(text[:10])
        except ValueError:
            return 0.0
        parsed = datetime(d.year, d.month, d.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


_collator: Optional[Collator] = None


def _text_key(value: str) -> tuple:
    # Unicode collation, so accented letters sort beside their base letter
    global _collator
    if _collator is None:
        _collator = Collator()
    return _collator.sort_key(value.lower())


_SORT_KEYS: Dict[str, Callable[[Book], Any]] = {
    "dateAdded": lambda b: parse_instant(b.date_added),
    "title": lambda b: _text_key(b.title),
    "author": lambda b: _text_key(b.author),
    "pages": lambda b: b.pages,
    "rating": lambda b: b.rating or 0,
    "dateRead": lambda b: parse_instant(b.date_read),
}


def filter_books(books: Iterable[Book], search_term: Optional[str] = None,
                 genre: Optional[str] = None) -> List[Book]:
    """Case-insensitive substring match on title, author or genre, plus exact genre match."""
    term = (search_term or "").lower()
    result = []
    for book in books:
        matches_search = (
            not term
            or term in book.title.lower()
            or term in book.author.lower()
            or term in book.genre.lower()
        )
        matches_genre = not genre or book.genre == genre
        if matches_search and matches_genre:
            result.append(book)
    return result


def sort_books(books: Iterable[Book], sort_by: str = "dateAdded", order: str = "desc") -> List[Book]:
    """Stable sort by one of SORT_FIELDS. Equal keys keep their collection order."""
    if sort_by not in _SORT_KEYS:
        raise ValueError(f"Invalid sort_by {sort_by!r}. Allowed: {', '.join(SORT_FIELDS)}")
    if order not in SORT_ORDERS:
        raise ValueError(f"Invalid order {order!r}. Allowed: asc, desc")
    # sorted(reverse=True) is still stable for equal keys
    return sorted(books, key=_SORT_KEYS[sort_by], reverse=(order == "desc"))


def query_books(books: Iterable[Book], search_term: Optional[str] = None, genre: Optional[str] = None,
                sort_by: str = "dateAdded", order: str = "desc") -> List[Book]:
    return sort_books(filter_books(books, search_term, genre), sort_by, order)


def get_genres(books: Iterable[Book]) -> List[str]:
    return sorted({book.genre for book in books})


def _read_at(book: Book) -> float:
    return parse_instant(book.date_read_timestamp or book.date_read)


def get_dashboard_stats(books: Iterable[Book]) -> Dict[str, Any]:
    """Aggregates shown on the dashboard.

    averageRating only counts books that have a rating; it is 0 when none do.
    recentlyRead orders read books by dateReadTimestamp, falling back to
    dateRead. upNext is the most recently added to-read books.
    """
    books = list(books)
    read = [b for b in books if b.status == BookStatus.READ.value]
    to_read = [b for b in books if b.status == BookStatus.TO_READ.value]
    rated = [b.rating for b in books if b.rating]

    recently_read = sorted(
        (b for b in read if b.date_read_timestamp or b.date_read),
        key=_read_at,
        reverse=True,
    )[:RECENT_LIMIT]
    up_next = sorted(to_read, key=lambda b: parse_instant(b.date_added), reverse=True)[:RECENT_LIMIT]

    return {
        "total": len(books),
        "read": len(read),
        "toRead": len(to_read),
        "totalPages": sum(b.pages for b in books),
        "readPages": sum(b.pages for b in read),
        "averageRating": sum(rated) / len(rated) if rated else 0.0,
        "recentlyRead": recently_read,
        "upNext": up_next,
    }
