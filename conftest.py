import json

import pytest

from database import JsonDocumentStorage, KeyValueStorage
from library import Library


@pytest.fixture
def data_file(tmp_path):
    # Each test gets its own document under a directory that does not exist yet
    return tmp_path / "data" / "db.json"


@pytest.fixture
def storage(data_file):
    return JsonDocumentStorage(data_file)


@pytest.fixture
def lib(storage):
    """Library seeded with the three sample books."""
    return Library(storage).initialize()


@pytest.fixture
def empty_lib(data_file):
    """Library over a persisted but empty collection."""
    data_file.parent.mkdir(parents=True, exist_ok=True)
    data_file.write_text(json.dumps({"books": []}), encoding="utf-8")
    return Library(JsonDocumentStorage(data_file)).initialize()


@pytest.fixture
def kv_storage(tmp_path):
    return KeyValueStorage(tmp_path / "local" / "local-storage.db")


@pytest.fixture
def valid_candidate():
    return {
        "title": "Project Hail Mary",
        "author": "Andy Weir",
        "genre": "Science Fiction",
        "pages": 476,
        "status": "to-read",
    }
