import pytest

from bookshelf.agent.tools import TOOL_DEFINITIONS, ToolDispatcher
from bookshelf.book import Note


@pytest.fixture
def dispatcher(lib):
    return ToolDispatcher(lib)


@pytest.fixture
def reading_history(add_book):
    """Completed: Fantasy x3, Mystery x2, History x1. One want-to-read book per genre plus Romance."""
    for i in range(3):
        add_book(f"Fantasy done {i}", genre="Fantasy", status="completed")
    for i in range(2):
        add_book(f"Mystery done {i}", genre="Mystery", status="completed")
    add_book("History done", genre="History", status="completed")

    add_book("Fantasy next", genre="Fantasy")
    add_book("Mystery next", genre="Mystery")
    add_book("History next", genre="History")
    add_book("Romance next", genre="Romance")
    add_book("No genre next")


def test_exactly_six_read_only_tools():
    names = [tool.name for tool in TOOL_DEFINITIONS]
    assert names == [
        "search_books", "get_all_books", "get_book_details",
        "get_statistics", "get_notes", "recommend_books",
    ]
    for tool in TOOL_DEFINITIONS:
        assert tool.input_schema["type"] == "object"


def test_unknown_tool_returns_error(dispatcher):
    assert dispatcher.dispatch("delete_everything", {}) == {"error": "Unknown tool"}


def test_search_books(dispatcher, add_book):
    add_book("Dune", "Frank Herbert")
    add_book("Emma", "Jane Austen")

    payload = dispatcher.dispatch("search_books", {"query": "herbert"})
    assert payload["count"] == 1
    assert payload["books"][0]["title"] == "Dune"


def test_search_books_requires_query(dispatcher):
    payload = dispatcher.dispatch("search_books", {})
    assert "error" in payload
    assert "query" in payload["error"]


def test_get_all_books_filters(dispatcher, add_book):
    add_book("Dune", genre="Sci-Fi", status="reading")
    add_book("Emma", genre="Romance")

    assert dispatcher.dispatch("get_all_books", {})["count"] == 2
    reading = dispatcher.dispatch("get_all_books", {"status": "reading"})
    assert [b["title"] for b in reading["books"]] == ["Dune"]
    romance = dispatcher.dispatch("get_all_books", {"genre": "Romance"})
    assert [b["title"] for b in romance["books"]] == ["Emma"]
    assert "error" in dispatcher.dispatch("get_all_books", {"status": "done"})


def test_get_book_details(dispatcher, lib, add_book):
    book = add_book("Dune")
    lib.add_note(Note(book_id=book.id, content="Great opening"))

    payload = dispatcher.dispatch("get_book_details", {"bookId": book.id})
    assert payload["book"]["title"] == "Dune"
    assert [n["content"] for n in payload["notes"]] == ["Great opening"]

    # JSON numbers may arrive as floats
    assert dispatcher.dispatch("get_book_details", {"bookId": float(book.id)})["book"]["id"] == book.id


def test_get_book_details_missing_book(dispatcher):
    assert dispatcher.dispatch("get_book_details", {"bookId": 404}) == {"error": "Book not found"}


@pytest.mark.parametrize("arguments", [{}, {"bookId": "one"}, {"bookId": True}, {"bookId": 1.5}])
def test_book_id_must_be_a_whole_number(dispatcher, arguments):
    assert "error" in dispatcher.dispatch("get_book_details", arguments)
    assert "error" in dispatcher.dispatch("get_notes", arguments)


def test_get_statistics(dispatcher, add_book):
    add_book("Dune", status="completed")
    assert dispatcher.dispatch("get_statistics", {}) == {
        "total": 1, "completed": 1, "reading": 0, "wantToRead": 0, "onHold": 0,
    }


def test_get_notes(dispatcher, lib, add_book):
    book = add_book("Dune")
    lib.add_note(Note(book_id=book.id, content="one"))
    lib.add_note(Note(book_id=book.id, content="two", type="highlight"))

    payload = dispatcher.dispatch("get_notes", {"bookId": book.id})
    assert payload["count"] == 2
    assert {n["content"] for n in payload["notes"]} == {"one", "two"}


def test_recommend_books_uses_top_three_genres(dispatcher, reading_history):
    payload = dispatcher.dispatch("recommend_books", {"basedOn": "my history"})

    assert payload["favoriteGenres"] == ["Fantasy", "Mystery", "History"]
    assert {b["title"] for b in payload["recommendations"]} == {"Fantasy next", "Mystery next", "History next"}
    assert payload["basedOn"] == "my history"
    assert payload["message"] == "Based on your reading history, you seem to enjoy Fantasy, Mystery, History"


def test_recommend_books_genre_limit(lib, reading_history):
    payload = ToolDispatcher(lib, favorite_genre_limit=2).dispatch("recommend_books", {"basedOn": "genre"})

    assert payload["favoriteGenres"] == ["Fantasy", "Mystery"]
    assert {b["title"] for b in payload["recommendations"]} == {"Fantasy next", "Mystery next"}


def test_recommend_books_capped_at_five(dispatcher, add_book):
    add_book("Read one", genre="Fantasy", status="completed")
    for i in range(7):
        add_book(f"Queued {i}", genre="Fantasy")

    payload = dispatcher.dispatch("recommend_books", {"basedOn": "fantasy"})
    assert len(payload["recommendations"]) == 5
    # store order: most recently added first
    assert [b["title"] for b in payload["recommendations"]] == [f"Queued {i}" for i in (6, 5, 4, 3, 2)]


def test_recommend_books_with_no_history(dispatcher, add_book):
    add_book("Queued", genre="Fantasy")

    payload = dispatcher.dispatch("recommend_books", {"basedOn": "anything"})
    assert payload["favoriteGenres"] == []
    assert payload["recommendations"] == []
