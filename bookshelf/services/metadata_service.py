import logging
from typing import Any, Dict, Optional

from bookshelf.agent.provider import LLMProvider, LLMProviderError
from bookshelf.services.google_books_service import GoogleBooksService

logger = logging.getLogger(__name__)


def summary_prompt(title: str, author: str, description: Optional[str] = None) -> str:
    prompt = f'Please provide a concise 5-7 sentence summary of the book "{title}" by {author}.'
    if description:
        prompt += f" Here's the book description: {description}\n\n"
    else:
        prompt += " "
    return prompt + "Provide only the summary, no additional commentary."


class BookMetadataService:
    """Fills in book fields from Google Books and asks the model for a short summary."""

    def __init__(self, google_books: Optional[GoogleBooksService] = None,
                 provider: Optional[LLMProvider] = None):
        self.google_books = google_books or GoogleBooksService()
        self.provider = provider

    async def generate_summary(self, title: str, author: str, description: Optional[str] = None) -> Optional[str]:
        if self.provider is None:
            return None
        try:
            summary = await self.provider.generate_text(summary_prompt(title, author, description), max_tokens=500)
        except LLMProviderError as e:
            logger.error(f"Summary generation failed for '{title}': {e}")
            return None
        return summary or None

    async def enrich_book_data(self, title: str, author: str, isbn: Optional[str] = None,
                               existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Merge looked-up metadata with what the caller already knows

        Values in ``existing`` win over Google Books. When no summary was given
        one is requested from the model.
        """
        metadata = await self.google_books.fetch_metadata(title, author, isbn)
        merged = {**metadata, **{k: v for k, v in (existing or {}).items() if v is not None}}
        if merged.get("summary"):
            return merged

        summary = await self.generate_summary(
            merged.get("title") or title,
            merged.get("author") or author,
            merged.get("description"),
        )
        if summary:
            merged["summary"] = summary
        return merged
