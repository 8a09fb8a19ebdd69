import base64
import mimetypes
import random
from pathlib import Path
from typing import Optional, Union

from utils.validators import ImageValidator

# Stock book images from Pexels
STOCK_BOOK_IMAGES = [
    "https://images.pexels.com/photos/159711/books-bookstore-book-reading-159711.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/1029141/pexels-photo-1029141.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/46274/pexels-photo-46274.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/1370295/pexels-photo-1370295.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/694740/pexels-photo-694740.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/1261728/pexels-photo-1261728.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/1319854/pexels-photo-1319854.jpeg?auto=compress&cs=tinysrgb&w=400",
    "https://images.pexels.com/photos/1130980/pexels-photo-1130980.jpeg?auto=compress&cs=tinysrgb&w=400",
]


class ImageValidationError(ValueError):
    pass


def get_random_stock_image() -> str:
    return random.choice(STOCK_BOOK_IMAGES)


def encode_data_uri(data: bytes, content_type: str) -> str:
    """Encode raw image bytes as a self-contained data URI."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def image_to_data_uri(data: bytes, content_type: Optional[str], max_size: Optional[int] = None) -> str:
    """Validate an uploaded image and return it as a data URI.

    Raises ImageValidationError with a user-facing message when the type is not
    JPEG/PNG/WebP or the payload is too large.
    """
    error = ImageValidator.validate(content_type, len(data), max_size)
    if error:
        raise ImageValidationError(error)
    return encode_data_uri(data, content_type.lower())


def load_image_file(path: Union[str, Path], max_size: Optional[int] = None) -> str:
    """Read an image from disk and return it as a data URI."""
    path = Path(path)
    content_type, _ = mimetypes.guess_type(path.name)
    # Fail on type before reading a possibly large file
    error = ImageValidator.validate(content_type, 0)
    if error:
        raise ImageValidationError(error)
    return image_to_data_uri(path.read_bytes(), content_type, max_size)
