from typing import Any, Dict, Optional

from book import BookStatus
from config import settings

VALID_STATUSES = {s.value for s in BookStatus}


class BookValidator:
    """Field checks run before a record is created or updated.

    Returns a field -> message mapping instead of raising, so callers can show
    one message per input. An empty mapping means the candidate is valid.
    """

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return not isinstance(value, str) or not value.strip()

    @staticmethod
    def _is_int(value: Any) -> bool:
        # bool is an int subclass; True is not a page count
        return isinstance(value, int) and not isinstance(value, bool)

    @staticmethod
    def validate(candidate: Dict[str, Any]) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        if BookValidator._is_blank(candidate.get("title")):
            errors["title"] = "Title is required"
        if BookValidator._is_blank(candidate.get("author")):
            errors["author"] = "Author is required"
        if BookValidator._is_blank(candidate.get("genre")):
            errors["genre"] = "Genre is required"

        pages = candidate.get("pages")
        if not BookValidator._is_int(pages) or pages <= 0:
            errors["pages"] = "Valid page count is required"

        if candidate.get("status") not in VALID_STATUSES:
            errors["status"] = "Status must be 'to-read' or 'read'"

        rating = candidate.get("rating")
        if rating is not None and (not BookValidator._is_int(rating) or not 1 <= rating <= 5):
            errors["rating"] = "Rating must be a whole number from 1 to 5"

        return errors


class ImageValidator:
    """Checks for uploaded cover images."""

    @staticmethod
    def validate(content_type: Optional[str], size: int, max_size: Optional[int] = None) -> Optional[str]:
        """Return an error message, or None when the image is acceptable."""
        limit = settings.max_image_size if max_size is None else max_size
        allowed = {t.lower() for t in settings.allowed_image_types}
        if (content_type or "").lower() not in allowed:
            return "Please upload a valid image file (JPEG, PNG, or WebP)"
        if size > limit:
            return f"Image size must be less than {_format_size(limit)}"
        return None


def _format_size(size: int) -> str:
    for unit, factor in (("MB", 1024 * 1024), ("KB", 1024)):
        if size >= factor:
            return f"{size / factor:g}{unit}"
    return f"{size} bytes"
