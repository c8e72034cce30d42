import sqlite3

import pytest

from bookshelf.book import Book, Note, SavedQA
from bookshelf.library import Library


def test_add_list_and_get(lib):
    assert lib.get_all_books() == []

    book = Book("Ulysses", "James Joyce", isbn="978-0-19-953567-5", genre="Modernism")
    book_id = lib.add_book(book)

    stored = lib.get_book_by_id(book_id)
    assert stored is not None
    assert stored.title == "Ulysses"
    assert stored.isbn == "9780199535675"
    assert stored.status == "want-to-read"
    assert stored.language == "English"
    assert stored.date_added
    assert len(lib.get_all_books()) == 1


def test_add_duplicate_isbn(lib):
    lib.add_book(Book("Test Book", "Test Author", isbn="1234567890"))

    with pytest.raises(ValueError, match="Book with ISBN 1234567890 already exists."):
        lib.add_book(Book("Other", "Someone", isbn="1234567890"))

    assert len(lib.get_all_books()) == 1


@pytest.mark.parametrize("fields, message", [
    ({"title": "  "}, "Title is required"),
    ({"author": ""}, "Author is required"),
    ({"status": "finished"}, "Invalid status"),
    ({"rating": 7}, "Rating must be"),
])
def test_add_book_validation(lib, fields, message):
    data = {"title": "Valid", "author": "Author", **fields}
    with pytest.raises(ValueError, match=message):
        lib.add_book(Book(**data))


def test_persistence(lib):
    lib.add_book(Book("Sapiens", "Yuval Noah Harari"))

    # New instance should read persisted data from SQLite
    lib2 = Library(db_file=lib.db_file)
    assert [b.title for b in lib2.get_all_books()] == ["Sapiens"]


def test_filters_and_sorting(lib, add_book):
    add_book("Dune", "Frank Herbert", genre="Sci-Fi", status="completed", tags="classic, space")
    add_book("Emma", "Jane Austen", genre="Romance", status="reading", tags="classic")
    add_book("Anathem", "Neal Stephenson", genre="Sci-Fi", status="want-to-read")

    assert [b.title for b in lib.get_all_books(genre="Sci-Fi", sort_by="title", sort_order="asc")] == ["Anathem", "Dune"]
    assert [b.title for b in lib.get_all_books(status="reading")] == ["Emma"]
    assert {b.title for b in lib.get_all_books(tag="classic")} == {"Dune", "Emma"}
    # newest first by default
    assert [b.title for b in lib.get_all_books()] == ["Anathem", "Emma", "Dune"]
    # unknown sort column falls back to date_added
    assert [b.title for b in lib.get_all_books(sort_by="title; DROP TABLE books")] == ["Anathem", "Emma", "Dune"]


def test_recent_books_and_status(lib, add_book):
    for i in range(7):
        add_book(f"Book {i}", status="completed" if i % 2 else "want-to-read")

    assert [b.title for b in lib.get_recent_books(5)] == ["Book 6", "Book 5", "Book 4", "Book 3", "Book 2"]
    assert [b.title for b in lib.get_books_by_status("completed")] == ["Book 5", "Book 3", "Book 1"]


def test_statistics(lib, add_book):
    assert lib.get_statistics() == {"total": 0, "completed": 0, "reading": 0, "wantToRead": 0, "onHold": 0}

    add_book("A", status="completed")
    add_book("B", status="completed")
    add_book("C", status="reading")
    add_book("D", status="on-hold")
    add_book("E")

    assert lib.get_statistics() == {"total": 5, "completed": 2, "reading": 1, "wantToRead": 1, "onHold": 1}


def test_search_books_full_text(lib, add_book):
    add_book("The Left Hand of Darkness", "Ursula K. Le Guin", genre="Sci-Fi")
    add_book("Persuasion", "Jane Austen", description="A story of second chances", tags="regency")

    assert [b.title for b in lib.search_books("guin")] == ["The Left Hand of Darkness"]
    assert [b.title for b in lib.search_books("second chance")] == ["Persuasion"]
    assert [b.title for b in lib.search_books("regen")] == ["Persuasion"]
    # FTS operators in user input are treated as plain words
    assert [b.title for b in lib.search_books('"darkness*')] == ["The Left Hand of Darkness"]
    assert lib.search_books("nothing-matches-this") == []
    # empty query lists everything
    assert len(lib.search_books("")) == 2


def test_search_follows_updates_and_deletes(lib, add_book):
    book = add_book("Old Name", "Writer")
    lib.update_book(book.id, {"title": "Brand New"})

    assert lib.search_books("old") == []
    assert [b.id for b in lib.search_books("brand")] == [book.id]

    lib.delete_book(book.id)
    assert lib.search_books("brand") == []


def test_update_book(lib, add_book):
    book = add_book("Old Title", "Old Author")

    assert lib.update_book(book.id, {"title": "New Title", "rating": 4, "current_page": 120}) is True
    updated = lib.get_book_by_id(book.id)
    assert updated.title == "New Title"
    assert updated.rating == 4
    assert updated.current_page == 120
    assert updated.author == "Old Author"

    assert lib.update_book(9999, {"title": "Ghost"}) is False


def test_update_book_rejects_unknown_fields(lib, add_book):
    book = add_book("Title")
    with pytest.raises(ValueError, match="Unknown field"):
        lib.update_book(book.id, {"date_added": "2000-01-01"})
    with pytest.raises(ValueError, match="Nothing to update"):
        lib.update_book(book.id, {})


def test_status_change_stamps_dates(lib, add_book):
    book = add_book("Dune")

    lib.update_book(book.id, {"status": "reading"})
    started = lib.get_book_by_id(book.id).date_started
    assert started

    lib.update_book(book.id, {"status": "completed"})
    finished = lib.get_book_by_id(book.id)
    assert finished.date_completed
    # started date is kept once set
    assert finished.date_started == started


def test_unique_genres_tags_and_tag_lookup(lib, add_book):
    add_book("A", genre="Fantasy", tags="Magic, dragons")
    add_book("B", genre="History", tags="war")
    add_book("C", genre="Fantasy")

    assert lib.get_unique_genres() == ["Fantasy", "History"]
    assert lib.get_unique_tags() == ["dragons", "magic", "war"]
    assert {b.title for b in lib.get_books_by_tags(["magic", "WAR"])} == {"A", "B"}
    assert lib.get_books_by_tags([" "]) == []


def test_notes_crud(lib, add_book):
    book = add_book("Dune")
    note_id = lib.add_note(Note(book_id=book.id, content="Fear is the mind-killer", type="quote", page_number=8))

    notes = lib.get_notes_by_book_id(book.id)
    assert [(n.id, n.type, n.page_number) for n in notes] == [(note_id, "quote", 8)]

    assert lib.update_note(note_id, "Fear is the little-death") is True
    assert lib.get_notes_by_book_id(book.id)[0].updated_at

    assert lib.delete_note(note_id) is True
    assert lib.delete_note(note_id) is False


def test_add_note_validation(lib, add_book):
    book = add_book("Dune")
    with pytest.raises(ValueError, match="Invalid note type"):
        lib.add_note(Note(book_id=book.id, content="x", type="comment"))
    with pytest.raises(LookupError):
        lib.add_note(Note(book_id=12345, content="x"))


def test_delete_book_removes_notes_and_qa(lib, add_book):
    book = add_book("Dune")
    lib.add_note(Note(book_id=book.id, content="note"))
    lib.save_qa(SavedQA(question="Q", answer="A", book_id=book.id))

    assert lib.delete_book(book.id) is True
    assert lib.get_notes_by_book_id(book.id) == []
    assert lib.get_saved_qa_by_book_id(book.id, include_hidden=True) == []
    assert lib.delete_book(book.id) is False


def test_saved_qa_hide_unhide(lib, add_book):
    book = add_book("Dune")
    first = lib.save_qa(SavedQA(question="Who is Paul?", answer="The heir", book_id=book.id))
    lib.save_qa(SavedQA(question="What is spice?", answer="Melange", book_id=book.id))
    library_qa = lib.save_qa(SavedQA(question="What do I read most?", answer="Sci-Fi"))

    assert [qa.question for qa in lib.get_saved_qa_by_book_id(book.id)] == ["Who is Paul?", "What is spice?"]
    assert [qa.id for qa in lib.get_library_qa()] == [library_qa]

    assert lib.hide_qa(first) is True
    assert [qa.question for qa in lib.get_saved_qa_by_book_id(book.id)] == ["What is spice?"]
    assert len(lib.get_saved_qa_by_book_id(book.id, include_hidden=True)) == 2
    assert lib.get_hidden_qa_count(book.id) == 1
    assert lib.get_hidden_qa_count(None) == 0

    assert lib.unhide_qa(first) is True
    assert lib.get_hidden_qa_count(book.id) == 0

    assert lib.delete_saved_qa(library_qa) is True
    assert lib.get_library_qa() == []
    assert lib.hide_qa(library_qa) is False


def test_upgrading_an_old_database_indexes_existing_books(tmp_path):
    db_file = str(tmp_path / "old.db")
    conn = sqlite3.connect(db_file)
    conn.execute("""
        CREATE TABLE books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            author TEXT NOT NULL,
            isbn TEXT,
            publisher TEXT,
            published_year INTEGER,
            genre TEXT,
            pages INTEGER,
            language TEXT,
            description TEXT,
            cover_url TEXT,
            status TEXT DEFAULT 'want-to-read',
            rating INTEGER,
            date_added TEXT NOT NULL,
            date_started TEXT,
            date_completed TEXT,
            current_page INTEGER DEFAULT 0
        )
    """)
    conn.execute("INSERT INTO books (title, author, date_added) VALUES ('Dune', 'Frank Herbert', '2020-01-01')")
    conn.commit()
    conn.close()

    lib = Library(db_file=db_file)

    assert [b.title for b in lib.get_all_books()] == ["Dune"]
    assert [b.title for b in lib.search_books("herbert")] == ["Dune"]
    # reopening does not duplicate index entries
    assert len(Library(db_file=db_file).search_books("dune")) == 1
