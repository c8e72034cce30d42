from __future__ import annotations

BOOK_STATUSES = ("want-to-read", "reading", "completed", "on-hold")
NOTE_TYPES = ("note", "highlight", "quote")


class Book:
    """Represents a single book in the library."""

    def __init__(self, title: str, author: str, id: int | None = None, isbn: str | None = None,
                 publisher: str | None = None, published_year: int | None = None, genre: str | None = None,
                 pages: int | None = None, language: str | None = None, description: str | None = None,
                 cover_url: str | None = None, summary: str | None = None, status: str | None = None,
                 rating: int | None = None, date_added: str | None = None,
                 # Reading progress
                 date_started: str | None = None, date_completed: str | None = None,
                 current_page: int | None = None, tags: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn
        self.publisher = publisher
        self.published_year = published_year
        self.genre = genre
        self.pages = pages
        self.language = language or "English"
        self.description = description
        self.cover_url = cover_url
        self.summary = summary
        self.status = status or "want-to-read"
        self.rating = rating
        self.date_added = date_added

        self.date_started = date_started
        self.date_completed = date_completed
        self.current_page = current_page or 0
        self.tags = tags

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f'"{self.title}" by {self.author} ({self.status})'

    @property
    def tag_list(self) -> list[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "published_year": self.published_year,
            "genre": self.genre,
            "pages": self.pages,
            "language": self.language,
            "description": self.description,
            "cover_url": self.cover_url,
            "summary": self.summary,
            "status": self.status,
            "rating": self.rating,
            "date_added": self.date_added,
            "date_started": self.date_started,
            "date_completed": self.date_completed,
            "current_page": self.current_page,
            "tags": self.tags,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            isbn=data.get("isbn"),
            publisher=data.get("publisher"),
            published_year=data.get("published_year"),
            genre=data.get("genre"),
            pages=data.get("pages"),
            language=data.get("language"),
            description=data.get("description"),
            cover_url=data.get("cover_url"),
            summary=data.get("summary"),
            status=data.get("status"),
            rating=data.get("rating"),
            date_added=data.get("date_added"),
            date_started=data.get("date_started"),
            date_completed=data.get("date_completed"),
            current_page=data.get("current_page"),
            tags=data.get("tags"),
        )


class Note:
    """A note, highlight or quote attached to a book."""

    def __init__(self, book_id: int, content: str, type: str = "note", id: int | None = None,
                 page_number: int | None = None, created_at: str | None = None,
                 updated_at: str | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.content = content
        self.page_number = page_number
        self.type = type
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "content": self.content,
            "page_number": self.page_number,
            "type": self.type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Note":
        return Note(
            id=data.get("id"),
            book_id=data["book_id"],
            content=data["content"],
            page_number=data.get("page_number"),
            type=data.get("type") or "note",
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class SavedQA:
    """A question and answer kept from an assistant conversation.

    ``book_id`` is None for questions asked about the library as a whole.
    """

    def __init__(self, question: str, answer: str, book_id: int | None = None, id: int | None = None,
                 suggestions: str | None = None, hidden: bool = False, created_at: str | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.question = question
        self.answer = answer
        self.suggestions = suggestions
        self.hidden = bool(hidden)
        self.created_at = created_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "question": self.question,
            "answer": self.answer,
            "suggestions": self.suggestions,
            "hidden": self.hidden,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "SavedQA":
        return SavedQA(
            id=data.get("id"),
            book_id=data.get("book_id"),
            question=data["question"],
            answer=data["answer"],
            suggestions=data.get("suggestions"),
            hidden=bool(data.get("hidden") or 0),
            created_at=data.get("created_at"),
        )
