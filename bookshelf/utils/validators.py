import re
from typing import Optional

from bookshelf.book import BOOK_STATUSES, NOTE_TYPES


class ISBNValidator:
    """ISBN-10 / ISBN-13 normalization and checksums."""

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        """Strip everything but digits and the ISBN-10 check character."""
        return re.sub(r"[^0-9X]", "", (raw or "").upper())

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        digits = ISBNValidator.normalize_isbn(isbn)
        if re.fullmatch(r"\d{9}[\dX]", digits):
            values = [10 if ch == "X" else int(ch) for ch in digits]
            return sum(weight * value for weight, value in zip(range(10, 0, -1), values)) % 11 == 0
        if re.fullmatch(r"\d{13}", digits):
            return sum(int(ch) * (3 if i % 2 else 1) for i, ch in enumerate(digits)) % 10 == 0
        return False


class BookValidator:
    """Field checks shared by the library store, the API and the CLI.

    Each ``validate_*`` raises ValueError with a readable message.
    """

    @staticmethod
    def validate_required(value: Optional[str], field: str) -> str:
        if value is None or not str(value).strip():
            raise ValueError(f"{field} is required")
        return str(value).strip()

    @staticmethod
    def validate_status(status: Optional[str]) -> str:
        if status not in BOOK_STATUSES:
            raise ValueError(f"Invalid status '{status}'. Expected one of: {', '.join(BOOK_STATUSES)}")
        return status

    @staticmethod
    def validate_rating(rating) -> Optional[int]:
        if rating is None:
            return None
        try:
            value = int(rating)
        except (TypeError, ValueError) as e:
            raise ValueError("Rating must be a number between 1 and 5") from e
        if value < 1 or value > 5:
            raise ValueError("Rating must be a number between 1 and 5")
        return value

    @staticmethod
    def validate_note_type(note_type: Optional[str]) -> str:
        if note_type not in NOTE_TYPES:
            raise ValueError(f"Invalid note type '{note_type}'. Expected one of: {', '.join(NOTE_TYPES)}")
        return note_type

    @staticmethod
    def normalize_tags(tags: Optional[str]) -> Optional[str]:
        """Collapse a comma-separated tag string: trimmed, de-duplicated, empty dropped."""
        if tags is None:
            return None
        seen = []
        for tag in tags.split(","):
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return ", ".join(seen) if seen else None
