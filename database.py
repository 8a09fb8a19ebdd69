"""Persistence backends for the book collection.

Both backends read and write the whole collection at once. ``load`` returns
``None`` when nothing has been persisted yet and raises ``MalformedDataError``
when the stored value cannot be decoded into a list of records.
"""

import json
import logging
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

STORAGE_KEY = "book-management-app-books"


class StorageUnavailableError(RuntimeError):
    """The storage location cannot be created or opened."""


class MalformedDataError(ValueError):
    """Persisted data is not valid JSON or does not have the expected shape."""


def _check_records(records: Any, source: str) -> List[Dict[str, Any]]:
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise MalformedDataError(f"{source}: expected a list of book objects")
    return records


class JsonDocumentStorage:
    """Single JSON document on disk shaped as ``{"books": [...]}``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:  # pragma: no cover
        return f"JsonDocumentStorage({str(self.path)!r})"

    def ensure_location(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create data directory {self.path.parent}: {e}") from e
        if not os.access(self.path.parent, os.W_OK):
            raise StorageUnavailableError(f"Data directory is not writable: {self.path.parent}")

    def load(self) -> Optional[List[Dict[str, Any]]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedDataError(f"{self.path}: {e}") from e
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(document, dict) or "books" not in document:
            raise MalformedDataError(f"{self.path}: missing 'books' list")
        return _check_records(document["books"], str(self.path))

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.ensure_location()
        # Write to a sibling temp file and swap it in so readers never see half a document
        fd, tmp_name = tempfile.mkstemp(prefix=".db-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"books": records}, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise


class KeyValueStorage:
    """Local key-value store holding the collection as a JSON array under one key."""

    def __init__(self, db_file: Union[str, Path], key: str = STORAGE_KEY) -> None:
        self.db_file = Path(db_file)
        self.key = key

    def __repr__(self) -> str:  # pragma: no cover
        return f"KeyValueStorage({str(self.db_file)!r}, key={self.key!r})"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_location(self) -> None:
        try:
            self.db_file.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailableError(f"Cannot open key-value store {self.db_file}: {e}") from e
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot initialize key-value store {self.db_file}: {e}") from e
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_item(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def load(self) -> Optional[List[Dict[str, Any]]]:
        self.ensure_location()
        raw = self.get_item(self.key)
        if raw is None:
            return None
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedDataError(f"{self.db_file}[{self.key}]: {e}") from e
        return _check_records(records, f"{self.db_file}[{self.key}]")

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.ensure_location()
        self.set_item(self.key, json.dumps(records, ensure_ascii=False))


def build_storage(config: Optional[Settings] = None):
    """Pick the storage backend named by ``LIBRARY_STORAGE``."""
    config = config or default_settings
    backend = (config.storage_backend or "json").lower()
    if backend == "json":
        return JsonDocumentStorage(config.data_path)
    if backend == "kv":
        return KeyValueStorage(config.kv_path)
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}. Use 'json' or 'kv'.")
