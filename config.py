import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _default_data_dir() -> str:
    return str(Path.home() / ".book-tracker" / "data")


@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "Book Tracker")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Storage
    data_dir: str = os.getenv("LIBRARY_DATA_DIR", _default_data_dir())
    data_file: str = os.getenv("LIBRARY_DATA_FILE", "db.json")
    storage_backend: str = os.getenv("LIBRARY_STORAGE", "json")  # json | kv
    kv_file: str = os.getenv("LIBRARY_KV_FILE", "local-storage.db")

    # API (embedded-store mode)
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")
    api_url: Optional[str] = os.getenv("API_URL")
    api_timeout: float = float(os.getenv("API_TIMEOUT", "10"))

    # Image uploads
    max_image_size: int = int(os.getenv("MAX_IMAGE_SIZE", str(5 * 1024 * 1024)))  # 5MB
    allowed_image_types: list = field(
        default_factory=lambda: [
            t.strip() for t in os.getenv("ALLOWED_IMAGE_TYPES", "image/jpeg,image/jpg,image/png,image/webp").split(",")
            if t.strip()
        ]
    )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir) / self.data_file

    @property
    def kv_path(self) -> Path:
        return Path(self.data_dir) / self.kv_file


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for CLI and server entry points."""
    level_name = (level or settings.log_level or "INFO").upper()
    if settings.debug:
        level_name = "DEBUG"
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
