import logging
import os
import sqlite3
from typing import Optional

from dotenv import load_dotenv

# Make sure .env is loaded before DATABASE_FILE is resolved, even when this
# module is imported ahead of config.py.
load_dotenv()

logger = logging.getLogger(__name__)

# Default database file.
# Priority:
# 1) LIBRARY_DB_FILE (explicit override, used by tests and scripts)
# 2) DATABASE_PATH (shared with config.py/.env)
# 3) library.db in the working directory
DATABASE_FILE = (
    os.environ.get("LIBRARY_DB_FILE")
    or os.environ.get("DATABASE_PATH")
    or os.path.join(os.getcwd(), "library.db")
)


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database with dict-like rows."""
    conn = sqlite3.connect(db_file or DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the required tables, indexes and full-text triggers if missing."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT,
                publisher TEXT,
                published_year INTEGER,
                genre TEXT,
                pages INTEGER,
                language TEXT DEFAULT 'English',
                description TEXT,
                cover_url TEXT,
                summary TEXT,
                status TEXT DEFAULT 'want-to-read'
                    CHECK(status IN ('want-to-read', 'reading', 'completed', 'on-hold')),
                rating INTEGER CHECK(rating >= 1 AND rating <= 5),
                date_added TEXT NOT NULL,
                date_started TEXT,
                date_completed TEXT,
                current_page INTEGER DEFAULT 0,
                tags TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL,
                content TEXT NOT NULL,
                page_number INTEGER,
                type TEXT NOT NULL CHECK(type IN ('note', 'highlight', 'quote')),
                created_at TEXT NOT NULL,
                updated_at TEXT,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        # book_id NULL marks a library-level Q&A
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS saved_qa (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER,
                question TEXT NOT NULL,
                answer TEXT NOT NULL,
                suggestions TEXT,
                hidden INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        # Migrations for databases created before these columns existed
        cursor.execute("PRAGMA table_info(books)")
        columns = [column[1] for column in cursor.fetchall()]
        if "summary" not in columns:
            logger.info("Adding summary column to books table")
            cursor.execute("ALTER TABLE books ADD COLUMN summary TEXT")
        if "tags" not in columns:
            cursor.execute("ALTER TABLE books ADD COLUMN tags TEXT")

        cursor.execute("PRAGMA table_info(saved_qa)")
        qa_columns = [column[1] for column in cursor.fetchall()]
        if "hidden" not in qa_columns:
            cursor.execute("ALTER TABLE saved_qa ADD COLUMN hidden INTEGER DEFAULT 0")

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_status ON books(status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_genre ON books(genre)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_date_added ON books(date_added)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notes_book_id ON notes(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_saved_qa_book_id ON saved_qa(book_id)")

        # Full-text search over the descriptive columns
        cursor.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'books_fts'")
        fts_is_new = cursor.fetchone() is None
        cursor.execute("""
            CREATE VIRTUAL TABLE IF NOT EXISTS books_fts USING fts5(
                title, author, description, genre, tags, content=books, content_rowid=id
            )
        """)
        cursor.executescript("""
            CREATE TRIGGER IF NOT EXISTS books_ai AFTER INSERT ON books BEGIN
                INSERT INTO books_fts(rowid, title, author, description, genre, tags)
                VALUES (new.id, new.title, new.author, new.description, new.genre, new.tags);
            END;

            CREATE TRIGGER IF NOT EXISTS books_ad AFTER DELETE ON books BEGIN
                INSERT INTO books_fts(books_fts, rowid, title, author, description, genre, tags)
                VALUES ('delete', old.id, old.title, old.author, old.description, old.genre, old.tags);
            END;

            CREATE TRIGGER IF NOT EXISTS books_au AFTER UPDATE ON books BEGIN
                INSERT INTO books_fts(books_fts, rowid, title, author, description, genre, tags)
                VALUES ('delete', old.id, old.title, old.author, old.description, old.genre, old.tags);
                INSERT INTO books_fts(rowid, title, author, description, genre, tags)
                VALUES (new.id, new.title, new.author, new.description, new.genre, new.tags);
            END;
        """)
        if fts_is_new:
            # Index rows written before the search table existed
            logger.info("Building full-text index for existing books")
            cursor.execute("INSERT INTO books_fts(books_fts) VALUES('rebuild')")

        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating tables and running migrations if needed."""
    create_tables(db_file)
