import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOK_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _rating_text(book: Any) -> str:
    return "★" * book.rating if book.rating else "-"


def print_list_result(books: List[Any]) -> None:
    """Print the book list in the current output mode.
    - plain: 'id - Title by Author [status]' lines, or 'No books in library.'
    - json: JSON array of full records
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif not books:
        print("No books in library.")
    elif mode == "rich":
        table = Table(title=f"📚 {len(books)} {'book' if len(books) == 1 else 'books'}",
                      show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="white")
        table.add_column("Pages", justify="right")
        table.add_column("Status")
        table.add_column("Rating", style="yellow")
        for b in books:
            status = "[green]read[/]" if b.is_read else "[blue]to-read[/]"
            table.add_row(b.id, b.title, b.author, b.genre, str(b.pages), status, _rating_text(b))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author} [{b.status}]")


def print_book_detail(book: Any) -> None:
    """Full record view including summary and quotes."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
        return

    lines = [
        f"Title: {book.title}",
        f"Author: {book.author}",
        f"Genre: {book.genre}",
        f"Pages: {book.pages}",
        f"Status: {book.status}",
        f"Added: {book.date_added}",
    ]
    if book.is_read:
        lines.append(f"Rating: {book.rating if book.rating else '-'}")
        if book.date_read:
            lines.append(f"Read on: {book.date_read}")
    if book.summary:
        lines.append(f"Summary: {book.summary}")
    quotes = book.quote_list()
    if quotes:
        lines.append(f"Quotes ({len(quotes)}):")
        lines.extend(f'  "{q}"' for q in quotes)

    if mode == "rich":
        _console.print(Panel("\n".join(lines), title=f"📖 {book.id}", border_style="cyan"))
    else:
        print(f"ID: {book.id}")
        for line in lines:
            print(line)


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print dashboard statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    recent = stats.get("recentlyRead", [])
    up_next = stats.get("upNext", [])

    if mode == "json":
        payload = dict(stats)
        payload["recentlyRead"] = [b.to_dict() for b in recent]
        payload["upNext"] = [b.to_dict() for b in up_next]
        print(json.dumps(payload, ensure_ascii=False))
        return

    summary = [
        f"Total Books: {stats['total']}",
        f"Read: {stats['read']}",
        f"To Read: {stats['toRead']}",
        f"Pages Read: {stats['readPages']} of {stats['totalPages']}",
        f"Average Rating: {stats['averageRating']:.1f}",
    ]
    if mode == "rich":
        content = "\n".join(f"[bold]{line.split(':')[0]}:[/]{line.split(':', 1)[1]}" for line in summary)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for line in summary:
            print(line)

    if recent:
        print("Recently Read:")
        for b in recent:
            print(f"  {b.title} by {b.author}")
    if up_next:
        print("Up Next:")
        for b in up_next:
            print(f"  {b.title} by {b.author}")
