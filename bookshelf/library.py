import logging
import re
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

import bookshelf.database as database
from bookshelf.book import Book, Note, SavedQA
from bookshelf.database import get_db_connection, initialize_database
from bookshelf.utils.validators import BookValidator, ISBNValidator

logger = logging.getLogger(__name__)

# Columns a caller may change through update_book
UPDATABLE_COLUMNS = (
    "title", "author", "isbn", "publisher", "published_year", "genre", "pages",
    "language", "description", "cover_url", "summary", "status", "rating",
    "date_started", "date_completed", "current_page", "tags",
)

SORT_COLUMNS = ("title", "author", "date_added", "published_year", "rating")

_FTS_TOKEN = re.compile(r"\w+", re.UNICODE)


def _now() -> str:
    return datetime.now().isoformat()


class Library:
    """Manages books, notes and saved Q&A on top of SQLite.

    A connection is opened per operation, so instances are cheap and safe to
    share between request handlers.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or database.DATABASE_FILE
        initialize_database(self.db_file)

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file)

    def _query_books(self, sql: str, params: tuple = ()) -> List[Book]:
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> int:
        """Insert a book and return its new id."""
        title = BookValidator.validate_required(book.title, "Title")
        author = BookValidator.validate_required(book.author, "Author")
        status = BookValidator.validate_status(book.status)
        rating = BookValidator.validate_rating(book.rating)
        isbn = ISBNValidator.normalize_isbn(book.isbn) or None

        if isbn and self._find_by_isbn(isbn):
            raise ValueError(f"Book with ISBN {isbn} already exists.")

        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                INSERT INTO books (
                    title, author, isbn, publisher, published_year, genre, pages,
                    language, description, cover_url, summary, status, rating, date_added,
                    date_started, date_completed, current_page, tags
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title, author, isbn, book.publisher, book.published_year, book.genre,
                    book.pages, book.language or "English", book.description, book.cover_url,
                    book.summary, status, rating, book.date_added or _now(),
                    book.date_started, book.date_completed, book.current_page or 0,
                    BookValidator.normalize_tags(book.tags),
                ),
            )
            conn.commit()
            book.id = cursor.lastrowid
            logger.info("Added book %s: %s by %s", book.id, title, author)
            return book.id
        finally:
            conn.close()

    def _find_by_isbn(self, isbn: str) -> Optional[Book]:
        books = self._query_books("SELECT * FROM books WHERE isbn = ?", (isbn,))
        return books[0] if books else None

    def get_book_by_id(self, book_id: int) -> Optional[Book]:
        books = self._query_books("SELECT * FROM books WHERE id = ?", (book_id,))
        return books[0] if books else None

    def get_all_books(self, status: Optional[str] = None, genre: Optional[str] = None,
                      tag: Optional[str] = None, sort_by: str = "date_added",
                      sort_order: str = "desc") -> List[Book]:
        """List books with optional filters. Unknown sort columns fall back to date_added."""
        conditions = []
        params: List[Any] = []
        if status:
            conditions.append("status = ?")
            params.append(status)
        if genre:
            conditions.append("genre = ?")
            params.append(genre)
        if tag:
            conditions.append("tags LIKE ?")
            params.append(f"%{tag}%")

        sql = "SELECT * FROM books"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)

        column = sort_by if sort_by in SORT_COLUMNS else "date_added"
        direction = "ASC" if (sort_order or "").lower() == "asc" else "DESC"
        sql += f" ORDER BY {column} {direction}, id {direction}"
        return self._query_books(sql, tuple(params))

    def get_books_by_status(self, status: str) -> List[Book]:
        return self._query_books(
            "SELECT * FROM books WHERE status = ? ORDER BY date_added DESC, id DESC", (status,)
        )

    def get_recent_books(self, limit: int = 10) -> List[Book]:
        return self._query_books(
            "SELECT * FROM books ORDER BY date_added DESC, id DESC LIMIT ?", (limit,)
        )

    def get_books_by_tags(self, tags: List[str]) -> List[Book]:
        """Books carrying any of the given tags (case-insensitive)."""
        wanted = [t.strip().lower() for t in tags if t and t.strip()]
        if not wanted:
            return []
        matched = []
        for book in self.get_all_books():
            book_tags = {t.lower() for t in book.tag_list}
            if book_tags.intersection(wanted):
                matched.append(book)
        return matched

    def get_unique_genres(self) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT DISTINCT genre FROM books WHERE genre IS NOT NULL AND genre != '' ORDER BY genre"
            ).fetchall()
            return [row["genre"] for row in rows]
        finally:
            conn.close()

    def get_unique_tags(self) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT tags FROM books WHERE tags IS NOT NULL").fetchall()
        finally:
            conn.close()
        all_tags = set()
        for row in rows:
            for tag in row["tags"].split(","):
                tag = tag.strip().lower()
                if tag:
                    all_tags.add(tag)
        return sorted(all_tags)

    def update_book(self, book_id: int, updates: Dict[str, Any]) -> bool:
        """Apply field updates to a book. Returns False when the book does not exist."""
        unknown = [key for key in updates if key not in UPDATABLE_COLUMNS and key != "id"]
        if unknown:
            raise ValueError(f"Unknown field(s): {', '.join(sorted(unknown))}")

        fields = {key: value for key, value in updates.items() if key != "id"}
        if not fields:
            raise ValueError("Nothing to update.")

        existing = self.get_book_by_id(book_id)
        if existing is None:
            return False

        if "title" in fields:
            fields["title"] = BookValidator.validate_required(fields["title"], "Title")
        if "author" in fields:
            fields["author"] = BookValidator.validate_required(fields["author"], "Author")
        if "rating" in fields:
            fields["rating"] = BookValidator.validate_rating(fields["rating"])
        if "tags" in fields:
            fields["tags"] = BookValidator.normalize_tags(fields["tags"])
        if "isbn" in fields:
            fields["isbn"] = ISBNValidator.normalize_isbn(fields["isbn"]) or None
        if "status" in fields:
            status = BookValidator.validate_status(fields["status"])
            if status == "reading" and not existing.date_started:
                fields.setdefault("date_started", _now())
            if status == "completed" and not existing.date_completed:
                fields.setdefault("date_completed", _now())

        assignments = ", ".join(f"{key} = ?" for key in fields)
        conn = self._connect()
        try:
            cursor = conn.execute(
                f"UPDATE books SET {assignments} WHERE id = ?", (*fields.values(), book_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete_book(self, book_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def search_books(self, query: str) -> List[Book]:
        """Full-text search over title, author, description, genre and tags.

        Each word of the query becomes a quoted prefix term, so punctuation in
        user input never reaches the FTS5 parser. An empty query lists all books.
        """
        tokens = _FTS_TOKEN.findall(query or "")
        if not tokens:
            return self.get_all_books()
        match = " ".join(f'"{token}"*' for token in tokens)
        return self._query_books(
            """
            SELECT books.* FROM books_fts
            JOIN books ON books_fts.rowid = books.id
            WHERE books_fts MATCH ?
            ORDER BY rank
            """,
            (match,),
        )

    def get_statistics(self) -> Dict[str, int]:
        """Counts of books overall and per reading status."""
        conn = self._connect()
        try:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0) AS completed,
                    COALESCE(SUM(CASE WHEN status = 'reading' THEN 1 ELSE 0 END), 0) AS reading,
                    COALESCE(SUM(CASE WHEN status = 'want-to-read' THEN 1 ELSE 0 END), 0) AS wantToRead,
                    COALESCE(SUM(CASE WHEN status = 'on-hold' THEN 1 ELSE 0 END), 0) AS onHold
                FROM books
                """
            ).fetchone()
            return dict(row)
        finally:
            conn.close()

    # ------------------------- Notes ------------------------- #
    def add_note(self, note: Note) -> int:
        content = BookValidator.validate_required(note.content, "Content")
        note_type = BookValidator.validate_note_type(note.type)
        if self.get_book_by_id(note.book_id) is None:
            raise LookupError("Book not found")

        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO notes (book_id, content, page_number, type, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (note.book_id, content, note.page_number, note_type,
                 note.created_at or _now(), note.updated_at),
            )
            conn.commit()
            note.id = cursor.lastrowid
            return note.id
        finally:
            conn.close()

    def get_notes_by_book_id(self, book_id: int) -> List[Note]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM notes WHERE book_id = ? ORDER BY created_at DESC, id DESC", (book_id,)
            ).fetchall()
            return [Note.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def update_note(self, note_id: int, content: str) -> bool:
        content = BookValidator.validate_required(content, "Content")
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE notes SET content = ?, updated_at = ? WHERE id = ?", (content, _now(), note_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete_note(self, note_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # ------------------------- Saved Q&A ------------------------- #
    def save_qa(self, qa: SavedQA) -> int:
        question = BookValidator.validate_required(qa.question, "Question")
        answer = BookValidator.validate_required(qa.answer, "Answer")
        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO saved_qa (book_id, question, answer, suggestions, hidden, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (qa.book_id, question, answer, qa.suggestions, 1 if qa.hidden else 0,
                 qa.created_at or _now()),
            )
            conn.commit()
            qa.id = cursor.lastrowid
            return qa.id
        finally:
            conn.close()

    def _query_qa(self, sql: str, params: tuple = ()) -> List[SavedQA]:
        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
            return [SavedQA.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def get_saved_qa_by_book_id(self, book_id: int, include_hidden: bool = False) -> List[SavedQA]:
        sql = "SELECT * FROM saved_qa WHERE book_id = ?"
        if not include_hidden:
            sql += " AND (hidden = 0 OR hidden IS NULL)"
        return self._query_qa(sql + " ORDER BY created_at ASC, id ASC", (book_id,))

    def get_library_qa(self, include_hidden: bool = False) -> List[SavedQA]:
        """Q&A saved without a book context."""
        sql = "SELECT * FROM saved_qa WHERE book_id IS NULL"
        if not include_hidden:
            sql += " AND (hidden = 0 OR hidden IS NULL)"
        return self._query_qa(sql + " ORDER BY created_at ASC, id ASC")

    def get_hidden_qa_count(self, book_id: Optional[int] = None) -> int:
        """Number of hidden Q&A for a book, or for the library when book_id is None."""
        conn = self._connect()
        try:
            if book_id is None:
                row = conn.execute(
                    "SELECT COUNT(*) FROM saved_qa WHERE book_id IS NULL AND hidden = 1"
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM saved_qa WHERE book_id = ? AND hidden = 1", (book_id,)
                ).fetchone()
            return row[0]
        finally:
            conn.close()

    def _set_qa_hidden(self, qa_id: int, hidden: bool) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE saved_qa SET hidden = ? WHERE id = ?", (1 if hidden else 0, qa_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def hide_qa(self, qa_id: int) -> bool:
        return self._set_qa_hidden(qa_id, True)

    def unhide_qa(self, qa_id: int) -> bool:
        return self._set_qa_hidden(qa_id, False)

    def delete_saved_qa(self, qa_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM saved_qa WHERE id = ?", (qa_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are opened per operation; kept so callers can release a Library uniformly."""
        return None
