"""HTTP client for a running book API, mirroring the Library interface.

Lets the CLI work against a book store owned by another process. Errors are
mapped back to the exceptions the local Library raises, so callers handle both
the same way.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from book import Book
from config import settings
from library import BookNotFoundError, ValidationError

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """The API could not be reached or answered with an unexpected status."""


class BookApiClient:
    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 http: Optional[httpx.Client] = None, timeout: Optional[float] = None) -> None:
        self.api_key = api_key or settings.api_key
        if http is None:
            base_url = base_url or settings.api_url or f"http://{settings.api_host}:{settings.api_port}"
            http = httpx.Client(base_url=base_url, timeout=timeout or settings.api_timeout)
        self._http = http

    def __enter__(self) -> "BookApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # ------------------------- Requests ------------------------- #
    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if method != "GET":
            headers["X-API-Key"] = self.api_key
        try:
            response = self._http.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            raise TransportError(f"Book API unreachable: {exc}") from exc
        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, book_id: Optional[str] = None) -> None:
        if response.status_code < 400:
            return
        if response.status_code == 404 and book_id is not None:
            raise BookNotFoundError(book_id)
        if response.status_code == 422:
            detail = response.json().get("detail")
            if isinstance(detail, dict) and "errors" in detail:
                raise ValidationError(detail["errors"])
            # Request body rejected by the API's own schema
            raise ValidationError(_schema_errors(detail))
        raise TransportError(f"Book API returned {response.status_code}: {response.text}")

    # ------------------------- Library interface ------------------------- #
    def initialize(self) -> "BookApiClient":
        """The remote store initializes itself at startup; this only checks it is up."""
        response = self._request("GET", "/health")
        self._raise_for_status(response)
        return self

    def list_books(self, search_term: Optional[str] = None, genre: Optional[str] = None,
                   sort_by: Optional[str] = None, order: str = "desc") -> List[Book]:
        params: Dict[str, Any] = {}
        if search_term:
            params["q"] = search_term
        if genre:
            params["genre"] = genre
        if sort_by:
            params["sort_by"] = sort_by
        if params:
            params["order"] = order
        response = self._request("GET", "/books", params=params)
        self._raise_for_status(response)
        return [Book.from_dict(item) for item in response.json()]

    def find_book(self, book_id: str) -> Optional[Book]:
        response = self._request("GET", f"/books/{book_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return Book.from_dict(response.json())

    def add_book(self, candidate: Dict[str, Any]) -> Book:
        response = self._request("POST", "/books", json=candidate)
        self._raise_for_status(response)
        return Book.from_dict(response.json())

    def update_book(self, book_id: str, updates: Dict[str, Any]) -> Book:
        response = self._request("PATCH", f"/books/{book_id}", json=updates)
        self._raise_for_status(response, book_id)
        return Book.from_dict(response.json())

    def replace_book(self, book: Book) -> Book:
        """Send a full record, as the update-book request does."""
        response = self._request("PUT", f"/books/{book.id}", json=book.to_dict())
        self._raise_for_status(response, book.id)
        return Book.from_dict(response.json())

    def remove_book(self, book_id: str) -> bool:
        response = self._request("DELETE", f"/books/{book_id}")
        self._raise_for_status(response)
        return bool(response.json().get("removed"))

    def mark_as_read(self, book_id: str, rating: Optional[int] = None, summary: Optional[str] = None) -> Book:
        response = self._request("POST", f"/books/{book_id}/read", json={"rating": rating, "summary": summary})
        self._raise_for_status(response, book_id)
        return Book.from_dict(response.json())

    def mark_as_to_read(self, book_id: str) -> Book:
        response = self._request("POST", f"/books/{book_id}/to-read")
        self._raise_for_status(response, book_id)
        return Book.from_dict(response.json())

    def get_genres(self) -> List[str]:
        response = self._request("GET", "/genres")
        self._raise_for_status(response)
        return response.json()

    def get_statistics(self) -> Dict[str, Any]:
        response = self._request("GET", "/stats")
        self._raise_for_status(response)
        stats = response.json()
        stats["recentlyRead"] = [Book.from_dict(b) for b in stats.get("recentlyRead", [])]
        stats["upNext"] = [Book.from_dict(b) for b in stats.get("upNext", [])]
        return stats


def _schema_errors(detail: Any) -> Dict[str, str]:
    """Flatten FastAPI's request validation errors into field -> message."""
    errors: Dict[str, str] = {}
    if isinstance(detail, list):
        for item in detail:
            loc = item.get("loc", [])
            field = str(loc[-1]) if loc else "body"
            errors[field] = item.get("msg", "Invalid value")
    return errors or {"body": "Invalid request"}
