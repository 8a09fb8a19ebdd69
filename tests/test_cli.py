import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

import main
from main import app
from utils.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # --output writes the mode to the environment; keep it from leaking between tests
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    monkeypatch.delenv("API_URL", raising=False)
    monkeypatch.setattr(main.settings, "api_url", None)


@pytest.fixture
def cli(tmp_path):
    def invoke(*args):
        return runner.invoke(app, ["--data-dir", str(tmp_path / "data"), *args])
    return invoke


def _add(cli, *extra):
    return cli("add", "-t", "Neuromancer", "-a", "William Gibson", "-g", "Science Fiction", "-p", "271", *extra)


def test_list_seeds_samples_on_first_run(cli, tmp_path):
    result = cli("list")
    assert result.exit_code == 0
    assert "2 - Dune by Frank Herbert [to-read]" in result.stdout
    assert (tmp_path / "data" / "db.json").exists()


def test_list_sorted_and_filtered(cli):
    result = cli("list", "--genre", "Classic Literature", "--sort", "pages", "--order", "asc")
    lines = result.stdout.strip().splitlines()
    assert lines == [
        "1 - The Great Gatsby by F. Scott Fitzgerald [read]",
        "3 - To Kill a Mockingbird by Harper Lee [read]",
    ]


def test_list_no_matches(cli):
    result = cli("list", "--search", "zzz")
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_list_bad_sort_key(cli):
    result = cli("list", "--sort", "isbn")
    assert result.exit_code == 1
    assert "Invalid sort_by" in result.stdout


def test_list_json_output(cli):
    result = cli("-o", "json", "list")
    books = json.loads(result.stdout)
    assert {b["id"] for b in books} == {"1", "2", "3"}


def test_list_json_output_with_no_matches(cli):
    result = cli("-o", "json", "list", "--search", "zzz")
    assert result.exit_code == 0
    assert json.loads(result.stdout) == []


def test_show_book(cli):
    result = cli("show", "1")
    assert result.exit_code == 0
    assert "ID: 1" in result.stdout
    assert "Title: The Great Gatsby" in result.stdout
    assert "Rating: 4" in result.stdout
    assert "Read on: 2024-01-20" in result.stdout


def test_show_missing_book(cli):
    result = cli("show", "nope")
    assert result.exit_code == 1
    assert "Book with id nope not found." in result.stdout


def test_add_book_success(cli):
    result = _add(cli, "--quotes", "The sky above the port\\nwas the color of television")
    assert result.exit_code == 0
    assert "Successfully added: Neuromancer by William Gibson" in result.stdout

    listing = cli("list", "--search", "gibson").stdout
    book_id = listing.split(" - ")[0].strip()
    shown = cli("show", book_id).stdout
    assert "Quotes (2):" in shown


def test_add_book_validation_failure(cli):
    result = cli("add", "-t", " ", "-a", "A", "-g", "G", "-p", "0")
    assert result.exit_code == 1
    assert "Could not save book:" in result.stdout
    assert "  pages: Valid page count is required" in result.stdout
    assert "  title: Title is required" in result.stdout


def test_add_book_with_image(cli, tmp_path):
    cover = tmp_path / "cover.png"
    cover.write_bytes(b"\x89PNG\r\n\x1a\n")
    assert _add(cli, "--image", str(cover)).exit_code == 0

    books = json.loads(cli("-o", "json", "list", "--search", "neuromancer").stdout)
    assert books[0]["imageUrl"].startswith("data:image/png;base64,")


def test_add_book_with_bad_image(cli, tmp_path):
    cover = tmp_path / "cover.gif"
    cover.write_bytes(b"GIF89a")
    result = _add(cli, "--image", str(cover))
    assert result.exit_code == 1
    assert "Please upload a valid image file" in result.stdout


def test_update_book(cli):
    result = cli("update", "2", "--pages", "700")
    assert result.exit_code == 0
    assert "Updated: Dune by Frank Herbert" in result.stdout
    assert "Pages: 700" in cli("show", "2").stdout


def test_update_without_fields(cli):
    result = cli("update", "2")
    assert result.exit_code == 1
    assert "Nothing to update" in result.stdout


def test_update_missing_book(cli):
    result = cli("update", "nope", "--pages", "5")
    assert result.exit_code == 1
    assert "Book with id nope not found." in result.stdout


def test_remove_book(cli):
    result = cli("remove", "2")
    assert result.exit_code == 0
    assert "Book with id 2 has been removed." in result.stdout

    result = cli("remove", "2")
    assert result.exit_code == 0
    assert "Book with id 2 not found." in result.stdout


def test_read_and_unread(cli):
    result = cli("read", "2", "--rating", "5", "--summary", "Spice.")
    assert result.exit_code == 0
    assert "Marked as read: Dune (" in result.stdout
    assert "Rating: 5" in cli("show", "2").stdout

    result = cli("unread", "2")
    assert result.exit_code == 0
    assert "Moved to to-read: Dune" in result.stdout
    assert "Rating:" not in cli("show", "2").stdout


def test_read_with_bad_rating(cli):
    result = cli("read", "2", "--rating", "9")
    assert result.exit_code == 1
    assert "rating: Rating must be a whole number from 1 to 5" in result.stdout


def test_genres(cli):
    result = cli("genres")
    assert result.stdout.splitlines() == ["Genres (2):", "- Classic Literature", "- Science Fiction"]


def test_stats(cli):
    result = cli("stats")
    assert result.exit_code == 0
    assert "Total Books: 3" in result.stdout
    assert "Pages Read: 556 of 1244" in result.stdout
    assert "Average Rating: 4.5" in result.stdout
    assert "Up Next:" in result.stdout


def test_export_json_and_csv(cli, tmp_path):
    target = tmp_path / "export"
    result = cli("export", "--format", "json", "--output-file", str(target))
    assert result.exit_code == 0
    assert "Exported 3 books" in result.stdout
    assert len(json.loads((tmp_path / "export.json").read_text(encoding="utf-8"))["books"]) == 3

    result = cli("export", "-f", "csv", "--output-file", str(target))
    assert result.exit_code == 0
    rows = (tmp_path / "export.csv").read_text(encoding="utf-8").splitlines()
    assert rows[0].startswith("id,title,author")
    assert len(rows) == 4


def test_export_unknown_format(cli, tmp_path):
    result = cli("export", "-f", "xml", "--output-file", str(tmp_path / "x"))
    assert result.exit_code == 1


def test_kv_storage_backend(tmp_path):
    args = ["--data-dir", str(tmp_path), "--storage", "kv"]
    assert runner.invoke(app, [*args, "remove", "1"]).exit_code == 0
    result = runner.invoke(app, [*args, "list"])
    assert "1 - The Great Gatsby" not in result.stdout
    assert (tmp_path / "local-storage.db").exists()
    assert not (tmp_path / "db.json").exists()


def test_unknown_storage_backend(tmp_path):
    result = runner.invoke(app, ["--data-dir", str(tmp_path), "--storage", "redis", "list"])
    assert result.exit_code == 1


def test_unavailable_storage(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    result = runner.invoke(app, ["--data-dir", str(blocker / "data"), "list"])
    assert result.exit_code == 1
    assert "Storage unavailable" in result.stdout


def test_serve_launches_uvicorn_factory(cli, tmp_path, monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(main.subprocess, "run", run_mock)

    result = cli("serve", "--port", "8123")
    assert result.exit_code == 0
    args = run_mock.call_args.args[0]
    assert args[1:4] == ["-m", "uvicorn", "api:create_app"]
    assert "--factory" in args
    assert args[args.index("--port") + 1] == "8123"
    assert run_mock.call_args.kwargs["env"]["LIBRARY_DATA_DIR"] == str(tmp_path / "data")
