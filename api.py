import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from book import Book, BookStatus
from config import settings
from library import BookNotFoundError, Library, ValidationError
from query import SORT_FIELDS, get_genres, query_books

logger = logging.getLogger(__name__)


# --- Models ---
class BookModel(BaseModel):
    """A stored book as sent over the wire (camelCase field names)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    author: str
    genre: str
    pages: int
    status: BookStatus
    rating: Optional[int] = None
    summary: Optional[str] = None
    quotes: Optional[str] = None
    date_added: str = Field(alias="dateAdded")
    date_read: Optional[str] = Field(default=None, alias="dateRead")
    date_read_timestamp: Optional[str] = Field(default=None, alias="dateReadTimestamp")
    cover_color: str = Field(alias="coverColor")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        return cls.model_validate(book.to_dict())


class BookCreateModel(BaseModel):
    """Fields a caller may supply for a new book; id, dateAdded and coverColor are assigned."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    author: str = ""
    genre: str = ""
    pages: int = 0
    status: BookStatus = BookStatus.TO_READ
    rating: Optional[int] = None
    summary: Optional[str] = None
    quotes: Optional[str] = None
    date_read: Optional[str] = Field(default=None, alias="dateRead")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class BookUpdateModel(BaseModel):
    """Partial update. Only fields present in the request body are applied."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    pages: Optional[int] = None
    status: Optional[BookStatus] = None
    rating: Optional[int] = None
    summary: Optional[str] = None
    quotes: Optional[str] = None
    date_read: Optional[str] = Field(default=None, alias="dateRead")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class BookReplaceModel(BookUpdateModel):
    """Full record as returned by GET; read-only fields are accepted and ignored."""
    id: Optional[str] = None
    date_added: Optional[str] = Field(default=None, alias="dateAdded")
    date_read_timestamp: Optional[str] = Field(default=None, alias="dateReadTimestamp")
    cover_color: Optional[str] = Field(default=None, alias="coverColor")


class MarkReadModel(BaseModel):
    rating: Optional[int] = None
    summary: Optional[str] = None


class StatsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    read: int
    to_read: int = Field(alias="toRead")
    total_pages: int = Field(alias="totalPages")
    read_pages: int = Field(alias="readPages")
    average_rating: float = Field(alias="averageRating")
    recently_read: List[BookModel] = Field(alias="recentlyRead")
    up_next: List[BookModel] = Field(alias="upNext")


# --- Helpers ---
def _payload(model: BaseModel, *, exclude_unset: bool = False, exclude_none: bool = False) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_unset=exclude_unset, exclude_none=exclude_none)


def _validation_failed(e: ValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors})


def _not_found(e: BookNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that checks the API key on mutating routes."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


def get_library(request: Request) -> Library:
    return request.app.state.library


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the API around one Library instance.

    The library is initialized when the app starts; a StorageUnavailableError
    there aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.library.initialize()
        logger.info("Book store ready (%d books)", len(app.state.library.list_books()))
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library if library is not None else Library()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health(lib: Library = Depends(get_library)):
        """Lightweight health endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_books": len(lib.list_books()),
            "storage": repr(lib.storage),
        }

    @app.get("/books", response_model=List[BookModel], response_model_by_alias=True,
             response_model_exclude_none=True)
    def get_books(
        lib: Library = Depends(get_library),
        q: Optional[str] = Query(None, description="Search title, author or genre"),
        genre: Optional[str] = Query(None, description="Exact genre filter"),
        sort_by: Optional[str] = Query(None, description="dateAdded|title|author|pages|rating|dateRead"),
        order: str = Query("desc", description="asc|desc"),
    ):
        """All books in collection order, or filtered and sorted when query parameters are given."""
        books = lib.list_books()
        if q or genre or sort_by:
            if sort_by is not None and sort_by not in SORT_FIELDS:
                raise HTTPException(status_code=400, detail=f"Invalid sort_by. Allowed: {', '.join(SORT_FIELDS)}")
            if order not in ("asc", "desc"):
                raise HTTPException(status_code=400, detail="Invalid order. Allowed: asc, desc")
            books = query_books(books, q, genre, sort_by or "dateAdded", order)
        return [BookModel.from_book(b) for b in books]

    @app.get("/books/{book_id}", response_model=BookModel, response_model_by_alias=True,
             response_model_exclude_none=True)
    def get_book(book_id: str, lib: Library = Depends(get_library)):
        book = lib.find_book(book_id)
        if not book:
            raise HTTPException(status_code=404, detail=f"Book with id {book_id} not found.")
        return BookModel.from_book(book)

    @app.post("/books", response_model=BookModel, response_model_by_alias=True,
              response_model_exclude_none=True, dependencies=[Depends(get_api_key)])
    def add_book(payload: BookCreateModel, lib: Library = Depends(get_library)):
        """Add a new book. Validation problems come back as 422 with per-field messages."""
        try:
            book = lib.add_book(_payload(payload, exclude_none=True))
        except ValidationError as e:
            raise _validation_failed(e)
        return BookModel.from_book(book)

    @app.put("/books/{book_id}", response_model=BookModel, response_model_by_alias=True,
             response_model_exclude_none=True, dependencies=[Depends(get_api_key)])
    def replace_book(book_id: str, payload: BookReplaceModel, lib: Library = Depends(get_library)):
        """Replace a book with the full record sent by the client.

        Optional fields missing from the body are cleared. id, dateAdded,
        coverColor and dateReadTimestamp are kept from the stored record.
        """
        updates = _payload(payload)
        for key in ("id", "dateAdded", "coverColor", "dateReadTimestamp"):
            updates.pop(key, None)
        try:
            book = lib.update_book(book_id, updates)
        except BookNotFoundError as e:
            raise _not_found(e)
        except ValidationError as e:
            raise _validation_failed(e)
        return BookModel.from_book(book)

    @app.patch("/books/{book_id}", response_model=BookModel, response_model_by_alias=True,
               response_model_exclude_none=True, dependencies=[Depends(get_api_key)])
    def patch_book(book_id: str, payload: BookUpdateModel, lib: Library = Depends(get_library)):
        """Apply only the fields present in the body; an explicit null clears a field."""
        try:
            book = lib.update_book(book_id, _payload(payload, exclude_unset=True))
        except BookNotFoundError as e:
            raise _not_found(e)
        except ValidationError as e:
            raise _validation_failed(e)
        return BookModel.from_book(book)

    @app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
    def delete_book(book_id: str, lib: Library = Depends(get_library)):
        """Delete a book. Deleting an unknown id also succeeds."""
        removed = lib.remove_book(book_id)
        return {"message": "Book removed." if removed else "Book not found; nothing to remove.", "removed": removed}

    @app.post("/books/{book_id}/read", response_model=BookModel, response_model_by_alias=True,
              response_model_exclude_none=True, dependencies=[Depends(get_api_key)])
    def mark_read(book_id: str, payload: Optional[MarkReadModel] = None, lib: Library = Depends(get_library)):
        payload = payload or MarkReadModel()
        try:
            book = lib.mark_as_read(book_id, rating=payload.rating, summary=payload.summary)
        except BookNotFoundError as e:
            raise _not_found(e)
        except ValidationError as e:
            raise _validation_failed(e)
        return BookModel.from_book(book)

    @app.post("/books/{book_id}/to-read", response_model=BookModel, response_model_by_alias=True,
              response_model_exclude_none=True, dependencies=[Depends(get_api_key)])
    def mark_to_read(book_id: str, lib: Library = Depends(get_library)):
        try:
            book = lib.mark_as_to_read(book_id)
        except BookNotFoundError as e:
            raise _not_found(e)
        return BookModel.from_book(book)

    @app.get("/genres", response_model=List[str])
    def list_genres(lib: Library = Depends(get_library)):
        return get_genres(lib.list_books())

    @app.get("/stats", response_model=StatsModel, response_model_by_alias=True)
    def get_stats(lib: Library = Depends(get_library)):
        """Dashboard aggregates for the whole collection."""
        stats = lib.get_statistics()
        return StatsModel(
            total=stats["total"],
            read=stats["read"],
            to_read=stats["toRead"],
            total_pages=stats["totalPages"],
            read_pages=stats["readPages"],
            average_rating=stats["averageRating"],
            recently_read=[BookModel.from_book(b) for b in stats["recentlyRead"]],
            up_next=[BookModel.from_book(b) for b in stats["upNext"]],
        )

    return app

