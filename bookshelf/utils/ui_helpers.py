import os
import json
from typing import List, Any, Dict, Optional, Sequence
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOKSHELF_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def format_book_line(book: Any) -> str:
    return f"[{book.id}] {book.title} by {book.author} ({book.status})"


def print_list_result(books: Sequence[Any], empty_message: str = "No books in library.") -> None:
    """Print books in the current output mode.
    - plain: '[id] Title by Author (status)' lines
    - json: JSON array of book objects
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="white")
        table.add_column("Status", style="green")
        table.add_column("Rating", style="yellow")
        for b in books:
            table.add_row(
                str(b.id), escape(b.title), escape(b.author), escape(b.genre or "-"),
                b.status, "★" * (b.rating or 0),
            )
        _console.print(table)
    else:
        for b in books:
            print(format_book_line(b))


def print_book_detail(book: Any, notes: Sequence[Any] = ()) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps({"book": book.to_dict(), "notes": [n.to_dict() for n in notes]}, ensure_ascii=False))
        return

    fields = [
        ("Title", book.title),
        ("Author", book.author),
        ("Status", book.status),
        ("Genre", book.genre),
        ("ISBN", book.isbn),
        ("Publisher", book.publisher),
        ("Published", book.published_year),
        ("Pages", book.pages),
        ("Current page", book.current_page or None),
        ("Rating", f"{book.rating}/5" if book.rating else None),
        ("Tags", book.tags),
    ]
    lines = [f"{label}: {value}" for label, value in fields if value not in (None, "")]
    if book.summary:
        lines.extend(["", f"Summary: {book.summary}"])
    note_lines = [
        f"- [{n.type}]" + (f" p.{n.page_number}" if n.page_number else "") + f" {n.content}"
        for n in notes
    ]

    if mode == "rich":
        content = "\n".join(escape(line) for line in lines)
        if note_lines:
            content += "\n\n[bold]Notes[/]\n" + "\n".join(escape(line) for line in note_lines)
        _console.print(Panel.fit(content, title=f"📖 Book #{book.id}", border_style="blue"))
    else:
        print("\n".join(lines))
        if note_lines:
            print("")
            print("Notes:")
            print("\n".join(note_lines))


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode.
    - plain: one 'Label: value' line per metric
    - json: JSON object
    - rich: Panel with the main metrics
    """
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    rows = [
        ("Total Books", stats.get("total", 0)),
        ("Completed", stats.get("completed", 0)),
        ("Reading", stats.get("reading", 0)),
        ("Want to Read", stats.get("wantToRead", 0)),
        ("On Hold", stats.get("onHold", 0)),
    ]

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {value}" for label, value in rows)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for label, value in rows:
            print(f"{label}: {value}")


def print_ai_response(message: str, suggestions: Optional[List[str]] = None) -> None:
    mode = get_output_mode()
    suggestions = suggestions or []

    if mode == "json":
        print(json.dumps({"message": message, "suggestions": suggestions}, ensure_ascii=False))
    elif mode == "rich":
        _console.print(Panel(escape(message), title="🤖 Assistant", border_style="green"))
        for i, suggestion in enumerate(suggestions, 1):
            _console.print(f"[dim]{i}. {escape(suggestion)}[/]")
    else:
        print(f"Assistant: {message}")
        if suggestions:
            print("Suggestions:")
            for i, suggestion in enumerate(suggestions, 1):
                print(f"  {i}. {suggestion}")
