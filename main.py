import csv
import json
import logging
import os
import subprocess
import sys
import webbrowser
from dataclasses import replace
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from book import BookStatus
from client import BookApiClient, TransportError
from config import configure_logging, settings
from database import StorageUnavailableError, build_storage
from image_utils import ImageValidationError, load_image_file
from library import BookNotFoundError, Library, ValidationError
from query import SORT_FIELDS, get_genres, query_books
from utils.ui_helpers import print_book_detail, print_list_result, print_stats_result, set_output_mode

APP_NAME = "Book Tracker CLI"

console = Console()
logger = logging.getLogger(__name__)

app = typer.Typer(help=APP_NAME)


class StoreContext:
    """Options from the global callback; the store is opened on first use."""

    def __init__(self, data_dir: Optional[str], storage: Optional[str], remote: Optional[str]) -> None:
        self.data_dir = data_dir
        self.storage = storage
        self.remote = remote
        self._store = None

    def open(self):
        if self._store is not None:
            return self._store
        if self.remote:
            store = BookApiClient(base_url=self.remote)
        else:
            config = settings
            if self.data_dir:
                config = replace(config, data_dir=self.data_dir)
            if self.storage:
                config = replace(config, storage_backend=self.storage)
            store = Library(build_storage(config))
        store.initialize()
        self._store = store
        return store


def _store(ctx: typer.Context):
    try:
        return ctx.obj.open()
    except StorageUnavailableError as e:
        console.print(f"[bold red]Storage unavailable:[/] {escape(str(e))}")
        raise typer.Exit(code=1)
    except (TransportError, ValueError) as e:
        console.print(f"[bold red]{escape(str(e))}[/]")
        raise typer.Exit(code=1)


def _fail_validation(e: ValidationError) -> None:
    print("Could not save book:")
    for field, message in sorted(e.errors.items()):
        print(f"  {field}: {message}")
    raise typer.Exit(code=1)


def _fail_not_found(book_id: str) -> None:
    print(f"Book with id {book_id} not found.")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"),
    data_dir: Optional[str] = typer.Option(None, "--data-dir", help="Directory holding the book data"),
    storage: Optional[str] = typer.Option(None, "--storage", help="Storage backend: json | kv"),
    remote: Optional[str] = typer.Option(None, "--remote", help="URL of a running book API to use instead of local storage"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Global options for the CLI (output mode, storage location)."""
    configure_logging("DEBUG" if verbose else None)
    if output:
        set_output_mode(output)
    ctx.obj = StoreContext(data_dir, storage, remote or settings.api_url)


@app.command("list")
def cli_list(
    ctx: typer.Context,
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Match title, author or genre"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Only this genre"),
    sort_by: str = typer.Option("dateAdded", "--sort", help=f"Sort key: {' | '.join(SORT_FIELDS)}"),
    order: str = typer.Option("desc", "--order", help="asc | desc"),
):
    """List books, optionally filtered and sorted."""
    store = _store(ctx)
    try:
        books = query_books(store.list_books(), search, genre, sort_by, order)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print_list_result(books)


@app.command("show")
def cli_show(ctx: typer.Context, book_id: str):
    """Show every field of one book, including summary and quotes."""
    book = _store(ctx).find_book(book_id)
    if not book:
        _fail_not_found(book_id)
    print_book_detail(book)


@app.command("add")
def cli_add(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", "-t"),
    author: str = typer.Option(..., "--author", "-a"),
    genre: str = typer.Option(..., "--genre", "-g"),
    pages: int = typer.Option(..., "--pages", "-p"),
    status: BookStatus = typer.Option(BookStatus.TO_READ, "--status"),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="1-5, for books already read"),
    summary: Optional[str] = typer.Option(None, "--summary"),
    quotes: Optional[str] = typer.Option(None, "--quotes", help="Quotations, one per line"),
    date_read: Optional[str] = typer.Option(None, "--date-read", help="YYYY-MM-DD"),
    image: Optional[str] = typer.Option(None, "--image", help="Cover image file (JPEG, PNG or WebP, max 5MB)"),
    image_url: Optional[str] = typer.Option(None, "--image-url", help="Cover image URL"),
):
    """Add a book to the collection."""
    candidate: Dict[str, Any] = {
        "title": title,
        "author": author,
        "genre": genre,
        "pages": pages,
        "status": status.value,
        "rating": rating,
        "summary": summary,
        "quotes": quotes.replace("\\n", "\n") if quotes else None,
        "dateRead": date_read,
        "imageUrl": image_url,
    }
    if image:
        try:
            candidate["imageUrl"] = load_image_file(image, settings.max_image_size)
        except (ImageValidationError, OSError) as e:
            print(f"Image error: {e}")
            raise typer.Exit(code=1)

    store = _store(ctx)
    try:
        book = store.add_book({k: v for k, v in candidate.items() if v is not None})
    except ValidationError as e:
        _fail_validation(e)
    print(f"Successfully added: {book.title} by {book.author} (id: {book.id})")


@app.command("update")
def cli_update(
    ctx: typer.Context,
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    pages: Optional[int] = typer.Option(None, "--pages", "-p"),
    status: Optional[BookStatus] = typer.Option(None, "--status"),
    rating: Optional[int] = typer.Option(None, "--rating", "-r"),
    summary: Optional[str] = typer.Option(None, "--summary"),
    quotes: Optional[str] = typer.Option(None, "--quotes"),
    date_read: Optional[str] = typer.Option(None, "--date-read"),
    image: Optional[str] = typer.Option(None, "--image"),
    image_url: Optional[str] = typer.Option(None, "--image-url"),
):
    """Change some fields of a book. Fields not given are left as they are."""
    updates: Dict[str, Any] = {
        "title": title,
        "author": author,
        "genre": genre,
        "pages": pages,
        "status": status.value if status else None,
        "rating": rating,
        "summary": summary,
        "quotes": quotes.replace("\\n", "\n") if quotes else None,
        "dateRead": date_read,
        "imageUrl": image_url,
    }
    updates = {k: v for k, v in updates.items() if v is not None}
    if image:
        try:
            updates["imageUrl"] = load_image_file(image, settings.max_image_size)
        except (ImageValidationError, OSError) as e:
            print(f"Image error: {e}")
            raise typer.Exit(code=1)
    if not updates:
        print("Nothing to update. Provide at least one field option.")
        raise typer.Exit(code=1)

    store = _store(ctx)
    try:
        book = store.update_book(book_id, updates)
    except BookNotFoundError:
        _fail_not_found(book_id)
    except ValidationError as e:
        _fail_validation(e)
    print(f"Updated: {book.title} by {book.author}")


@app.command("remove")
def cli_remove(
    ctx: typer.Context,
    book_id: str,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Remove a book by id."""
    store = _store(ctx)
    book = store.find_book(book_id)
    if book and not yes and sys.stdin.isatty():
        if not Confirm.ask(f"🗑️ Remove [bold]{escape(book.title)}[/]?", default=False):
            print("Cancelled.")
            return
    if store.remove_book(book_id):
        print(f"Book with id {book_id} has been removed.")
    else:
        print(f"Book with id {book_id} not found.")


@app.command("read")
def cli_read(
    ctx: typer.Context,
    book_id: str,
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="1-5"),
    summary: Optional[str] = typer.Option(None, "--summary"),
):
    """Mark a book as read today."""
    store = _store(ctx)
    try:
        book = store.mark_as_read(book_id, rating=rating, summary=summary)
    except BookNotFoundError:
        _fail_not_found(book_id)
    except ValidationError as e:
        _fail_validation(e)
    print(f"Marked as read: {book.title} ({book.date_read})")


@app.command("unread")
def cli_unread(ctx: typer.Context, book_id: str):
    """Move a book back to the to-read list. Clears its rating and read date."""
    store = _store(ctx)
    try:
        book = store.mark_as_to_read(book_id)
    except BookNotFoundError:
        _fail_not_found(book_id)
    print(f"Moved to to-read: {book.title}")


@app.command("genres")
def cli_genres(ctx: typer.Context):
    """List the genres in the collection."""
    genres = get_genres(_store(ctx).list_books())
    if not genres:
        print("No books in library.")
        return
    print(f"Genres ({len(genres)}):")
    for genre in genres:
        print(f"- {genre}")


@app.command("stats")
def cli_stats(ctx: typer.Context):
    """Show reading statistics."""
    print_stats_result(_store(ctx).get_statistics())


@app.command("export")
def cli_export(
    ctx: typer.Context,
    format: str = typer.Option("json", "--format", "-f", help="json | csv"),
    output: str = typer.Option("books_export", "--output-file", help="File name without extension"),
):
    """Export the collection to a file."""
    books = _store(ctx).list_books()
    if not books:
        print("No books to export.")
        return

    fmt = format.lower()
    if fmt == "json":
        filename = f"{output}.json"
        with open(filename, "w", encoding="utf-8") as jsonfile:
            json.dump({"books": [b.to_dict() for b in books]}, jsonfile, indent=2, ensure_ascii=False)
    elif fmt == "csv":
        filename = f"{output}.csv"
        fields = ["id", "title", "author", "genre", "pages", "status", "rating", "dateAdded", "dateRead"]
        with open(filename, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fields, extrasaction="ignore")
            writer.writeheader()
            for book in books:
                writer.writerow(book.to_dict())
    else:
        print(f"Unsupported format: {format}. Use json or csv.")
        raise typer.Exit(code=1)
    print(f"Exported {len(books)} books to {filename}")


@app.command("serve")
def cli_serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    open_browser: bool = typer.Option(False, "--open", help="Open the API docs in a browser"),
):
    """Run the book API so other processes can use this collection."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting book API on {url}")
    if open_browser:
        webbrowser.open(url)
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:create_app",
        "--factory",
        "--host", host,
        "--port", str(port),
    ]
    env = os.environ.copy()
    if ctx.obj.data_dir:
        env["LIBRARY_DATA_DIR"] = ctx.obj.data_dir
    if ctx.obj.storage:
        env["LIBRARY_STORAGE"] = ctx.obj.storage
    try:
        subprocess.run(args, env=env, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
