import logging
import sqlite3
from collections import Counter
from typing import Any, Callable, Dict, List, Optional

from bookshelf.agent.types import ToolDefinition
from bookshelf.book import BOOK_STATUSES
from bookshelf.library import Library

logger = logging.getLogger(__name__)

TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="search_books",
        description="Search for books in the library using full-text search. Returns books matching the query.",
        input_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query to find books by title, author, description, genre, or tags",
                },
            },
            "required": ["query"],
        },
    ),
    ToolDefinition(
        name="get_all_books",
        description="Get all books from the library, optionally filtered by status or genre",
        input_schema={
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": list(BOOK_STATUSES),
                    "description": "Filter books by reading status",
                },
                "genre": {
                    "type": "string",
                    "description": "Filter books by genre",
                },
            },
        },
    ),
    ToolDefinition(
        name="get_book_details",
        description="Get detailed information about a specific book by ID",
        input_schema={
            "type": "object",
            "properties": {
                "bookId": {"type": "number", "description": "The ID of the book"},
            },
            "required": ["bookId"],
        },
    ),
    ToolDefinition(
        name="get_statistics",
        description="Get library statistics including total books, completed, reading, etc.",
        input_schema={"type": "object", "properties": {}},
    ),
    ToolDefinition(
        name="get_notes",
        description="Get all notes and highlights for a specific book",
        input_schema={
            "type": "object",
            "properties": {
                "bookId": {"type": "number", "description": "The ID of the book"},
            },
            "required": ["bookId"],
        },
    ),
    ToolDefinition(
        name="recommend_books",
        description="Get book recommendations based on user preferences, reading history, or similar books",
        input_schema={
            "type": "object",
            "properties": {
                "basedOn": {
                    "type": "string",
                    "description": "What to base recommendations on (genre, author, completed books, etc.)",
                },
            },
            "required": ["basedOn"],
        },
    ),
]


class ToolArgumentError(ValueError):
    """Raised when a tool is called with missing or ill-typed arguments."""


def _require_str(arguments: Dict[str, Any], name: str) -> str:
    value = arguments.get(name)
    if not isinstance(value, str):
        raise ToolArgumentError(f"'{name}' is required and must be a string")
    return value


def _optional_str(arguments: Dict[str, Any], name: str) -> Optional[str]:
    value = arguments.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ToolArgumentError(f"'{name}' must be a string")
    return value


def _require_id(arguments: Dict[str, Any], name: str) -> int:
    value = arguments.get(name)
    # bool is an int subclass but never a valid id
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolArgumentError(f"'{name}' is required and must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ToolArgumentError(f"'{name}' must be a whole number")
    return int(value)


class ToolDispatcher:
    """Executes the assistant's read-only library tools.

    ``dispatch`` always returns a JSON-ready dict: failures are reported to
    the model as ``{"error": ...}`` payloads instead of being raised.
    """

    def __init__(self, library: Library, favorite_genre_limit: int = 3, recommendation_limit: int = 5) -> None:
        self.library = library
        self.favorite_genre_limit = favorite_genre_limit
        self.recommendation_limit = recommendation_limit
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "search_books": self._search_books,
            "get_all_books": self._get_all_books,
            "get_book_details": self._get_book_details,
            "get_statistics": self._get_statistics,
            "get_notes": self._get_notes,
            "recommend_books": self._recommend_books,
        }

    @property
    def definitions(self) -> List[ToolDefinition]:
        return TOOL_DEFINITIONS

    def dispatch(self, name: str, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Model requested unknown tool %r", name)
            return {"error": "Unknown tool"}
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return {"error": "Tool arguments must be an object"}

        try:
            return handler(arguments)
        except (ValueError, LookupError) as e:
            logger.info("Tool %s rejected arguments %r: %s", name, arguments, e)
            return {"error": str(e)}
        except sqlite3.Error as e:
            logger.error("Tool %s failed: %s", name, e)
            return {"error": f"Library lookup failed: {e}"}

    def _search_books(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        books = self.library.search_books(_require_str(arguments, "query"))
        return {"books": [b.to_dict() for b in books], "count": len(books)}

    def _get_all_books(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        status = _optional_str(arguments, "status")
        if status is not None and status not in BOOK_STATUSES:
            raise ToolArgumentError(f"Invalid status '{status}'")
        books = self.library.get_all_books(status=status, genre=_optional_str(arguments, "genre"))
        return {"books": [b.to_dict() for b in books], "count": len(books)}

    def _get_book_details(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        book_id = _require_id(arguments, "bookId")
        book = self.library.get_book_by_id(book_id)
        if book is None:
            return {"error": "Book not found"}
        notes = self.library.get_notes_by_book_id(book_id)
        return {"book": book.to_dict(), "notes": [n.to_dict() for n in notes]}

    def _get_statistics(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return self.library.get_statistics()

    def _get_notes(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        notes = self.library.get_notes_by_book_id(_require_id(arguments, "bookId"))
        return {"notes": [n.to_dict() for n in notes], "count": len(notes)}

    def _recommend_books(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        based_on = _require_str(arguments, "basedOn")

        genre_counts = Counter(
            book.genre for book in self.library.get_books_by_status("completed") if book.genre
        )
        # most_common keeps first-seen order among equal counts
        favorite_genres = [genre for genre, _ in genre_counts.most_common(self.favorite_genre_limit)]

        recommendations = [
            book for book in self.library.get_books_by_status("want-to-read")
            if book.genre and book.genre in favorite_genres
        ][:self.recommendation_limit]

        return {
            "recommendations": [b.to_dict() for b in recommendations],
            "favoriteGenres": favorite_genres,
            "basedOn": based_on,
            "message": f"Based on your reading history, you seem to enjoy {', '.join(favorite_genres)}",
        }
