import asyncio
import logging
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.prompt import Prompt

from bookshelf.agent import (
    AnthropicProvider,
    BookContext,
    LibraryAgent,
    LLMProviderError,
    QAPair,
    SessionRegistry,
)
from bookshelf.book import BOOK_STATUSES, NOTE_TYPES, Book, Note
from bookshelf.config import settings
from bookshelf.library import Library
from bookshelf.services.http_client import cleanup_http_client
from bookshelf.services.metadata_service import BookMetadataService
from bookshelf.utils.ui_helpers import (
    print_ai_response,
    print_book_detail,
    print_list_result,
    print_stats_result,
    set_output_mode,
)

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

console = Console()

EXIT_WORDS = {"exit", "quit"}


def get_library() -> Library:
    return Library()


def build_agent(library: Library) -> LibraryAgent:
    """Assistant used by `ask`; patched in tests."""
    return LibraryAgent(library, AnthropicProvider(), SessionRegistry())


def build_metadata_service() -> BookMetadataService:
    return BookMetadataService(provider=AnthropicProvider() if settings.anthropic_api_key else None)


async def _enrich(title: str, author: str, isbn: Optional[str], existing: dict) -> dict:
    try:
        return await build_metadata_service().enrich_book_data(title, author, isbn, existing=existing)
    finally:
        await cleanup_http_client()


# --- Typer CLI ---
app = typer.Typer(help="Bookshelf: personal library manager with an AI assistant")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("add")
def cli_add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Argument(..., help="Book author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN-10 or ISBN-13"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    status: str = typer.Option("want-to-read", "--status", "-s", help=" | ".join(BOOK_STATUSES)),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Comma-separated tags"),
    no_fetch: bool = typer.Option(False, "--no-fetch", help="Skip the Google Books / summary lookup"),
):
    """Add a book, optionally filling in metadata from Google Books."""
    data = {"title": title, "author": author, "isbn": isbn, "genre": genre, "status": status, "tags": tags}
    if not no_fetch and settings.enable_metadata_fetch:
        console.print("[dim]Fetching book metadata...[/]")
        provided = {k: v for k, v in data.items() if v is not None}
        data = asyncio.run(_enrich(title, author, isbn, provided))

    lib = get_library()
    try:
        book = Book.from_dict(data)
        book_id = lib.add_book(book)
    except ValueError as e:
        print(f"Error: {e}")
        return
    print(f"Successfully added: [{book_id}] {book.title} by {book.author}")


@app.command("list")
def cli_list(
    status: Optional[str] = typer.Option(None, "--status", "-s"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    tag: Optional[str] = typer.Option(None, "--tag"),
    sort_by: str = typer.Option("date_added", "--sort-by", help="title | author | date_added | published_year | rating"),
    order: str = typer.Option("desc", "--order", help="asc | desc"),
):
    """List books in the library."""
    books = get_library().get_all_books(status=status, genre=genre, tag=tag, sort_by=sort_by, sort_order=order)
    print_list_result(books)


@app.command("search")
def cli_search(query: str = typer.Argument(..., help="Words to look for in title, author, description, genre or tags")):
    """Full-text search."""
    books = get_library().search_books(query)
    print_list_result(books, empty_message="No books matched your search.")


@app.command("view")
def cli_view(book_id: int = typer.Argument(..., help="Book ID")):
    """Show a book and its notes."""
    lib = get_library()
    book = lib.get_book_by_id(book_id)
    if book is None:
        print(f"Book with ID {book_id} not found.")
        return
    print_book_detail(book, lib.get_notes_by_book_id(book_id))


@app.command("update")
def cli_update(
    book_id: int = typer.Argument(..., help="Book ID"),
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help=" | ".join(BOOK_STATUSES)),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="1-5"),
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Current page"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t"),
):
    """Update fields of a book."""
    updates = {
        "title": title, "author": author, "status": status, "rating": rating,
        "current_page": page, "genre": genre, "tags": tags,
    }
    updates = {k: v for k, v in updates.items() if v is not None}
    try:
        updated = get_library().update_book(book_id, updates)
    except ValueError as e:
        print(f"Error: {e}")
        return
    if updated:
        print(f"Book {book_id} updated.")
    else:
        print(f"Book with ID {book_id} not found.")


@app.command("delete")
def cli_delete(
    book_id: int = typer.Argument(..., help="Book ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a book together with its notes and saved Q&A."""
    lib = get_library()
    book = lib.get_book_by_id(book_id)
    if book is None:
        print(f"Book with ID {book_id} not found.")
        return
    if not yes and not typer.confirm(f'Delete "{book.title}"?'):
        print("Cancelled.")
        return
    lib.delete_book(book_id)
    print(f"Book {book_id} has been deleted.")


@app.command("note")
def cli_note(
    book_id: int = typer.Argument(..., help="Book ID"),
    content: str = typer.Argument(..., help="Note text"),
    note_type: str = typer.Option("note", "--type", help=" | ".join(NOTE_TYPES)),
    page: Optional[int] = typer.Option(None, "--page", "-p"),
):
    """Attach a note, highlight or quote to a book."""
    try:
        note_id = get_library().add_note(Note(book_id=book_id, content=content, type=note_type, page_number=page))
    except LookupError:
        print(f"Book with ID {book_id} not found.")
        return
    except ValueError as e:
        print(f"Error: {e}")
        return
    print(f"Note {note_id} added to book {book_id}.")


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(get_library().get_statistics())


async def _chat(agent: LibraryAgent, context: Optional[BookContext], saved_qa: list, session_id: str) -> None:
    try:
        while True:
            try:
                message = Prompt.ask("[bold cyan]You[/]").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not message:
                continue
            if message.lower() in EXIT_WORDS:
                break
            try:
                response = await asyncio.wait_for(
                    agent.query(message, context=context, saved_qa=saved_qa, session_id=session_id),
                    timeout=settings.ai_request_timeout,
                )
            except asyncio.TimeoutError:
                print("Error: the assistant took too long to answer. Please try again.")
                continue
            except LLMProviderError as e:
                print(f"Error: {e}. Please try again.")
                continue
            print_ai_response(response.message, response.suggestions)
    finally:
        await cleanup_http_client()


@app.command("ask")
def cli_ask(
    book: Optional[int] = typer.Option(None, "--book", "-b", help="Talk about a specific book"),
    session: str = typer.Option(settings.default_session_id, "--session", help="Conversation session id"),
):
    """Chat with the library assistant. Type 'exit' to quit."""
    lib = get_library()
    context = None
    saved = []
    if book is not None:
        selected = lib.get_book_by_id(book)
        if selected is None:
            print(f"Book with ID {book} not found.")
            return
        context = BookContext(id=selected.id, title=selected.title, author=selected.author,
                              summary=selected.summary, genre=selected.genre, tags=selected.tags)
        saved = lib.get_saved_qa_by_book_id(selected.id)
        print(f'Asking about "{selected.title}" by {selected.author}. Type "exit" to quit.')
    else:
        saved = lib.get_library_qa()
        print('Ask anything about your library. Type "exit" to quit.')

    saved_qa = [QAPair(qa.question, qa.answer) for qa in saved]
    asyncio.run(_chat(build_agent(lib), context, saved_qa, session))
    print("Goodbye!")


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "bookshelf.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    subprocess.run(args)


if __name__ == "__main__":
    app()
