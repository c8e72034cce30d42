import logging
from typing import Any, Dict, Optional

import httpx

from bookshelf.config import settings
from bookshelf.services.http_client import SharedHTTPClient, get_http_client
from bookshelf.utils.validators import ISBNValidator

logger = logging.getLogger(__name__)

# Preferred cover sizes, largest first
_COVER_KEYS = ("thumbnail", "smallThumbnail")


class GoogleBooksAPIError(Exception):
    """Custom exception for Google Books API errors"""
    pass


class RateLimitExceeded(GoogleBooksAPIError):
    """Exception raised when rate limit is exceeded"""
    pass


class GoogleBooksService:
    """Looks up book metadata on the Google Books volumes API."""

    def __init__(self, api_key: Optional[str] = None, http_client: Optional[SharedHTTPClient] = None):
        self.api_key = api_key or settings.google_books_api_key
        self.base_url = "https://www.googleapis.com/books/v1"
        self.timeout = settings.google_books_timeout
        self._http_client = http_client

    async def _client(self) -> SharedHTTPClient:
        if self._http_client is None:
            self._http_client = await get_http_client()
        return self._http_client

    async def _make_api_request(self, endpoint: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Make an API request to Google Books"""
        url = f"{self.base_url}/{endpoint}"
        if self.api_key:
            params["key"] = self.api_key

        client = await self._client()
        response = await client.get_with_retry(url, params=params, timeout=self.timeout)
        if response is None:
            raise GoogleBooksAPIError("Google Books unreachable")
        if response.status_code == 429:
            raise RateLimitExceeded("Rate limit exceeded")
        if response.status_code != 200:
            raise GoogleBooksAPIError(f"API request failed: {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise GoogleBooksAPIError("Invalid JSON from Google Books") from e

    @staticmethod
    def _parse_volume_info(volume_info: Dict[str, Any], title: str, author: str,
                           isbn: Optional[str]) -> Dict[str, Any]:
        """Map a volumeInfo object onto book fields; absent values are left out."""
        identifiers = volume_info.get("industryIdentifiers") or []
        found_isbn = next(
            (i.get("identifier") for i in identifiers if i.get("type") in ("ISBN_13", "ISBN_10")),
            None,
        )

        published_year = None
        published_date = volume_info.get("publishedDate") or ""
        if published_date[:4].isdigit():
            published_year = int(published_date[:4])

        image_links = volume_info.get("imageLinks") or {}
        cover_url = None
        for key in _COVER_KEYS:
            if image_links.get(key):
                cover_url = image_links[key].replace("http://", "https://")
                break

        categories = volume_info.get("categories") or []
        authors = volume_info.get("authors") or []

        metadata = {
            "title": volume_info.get("title") or title,
            "author": ", ".join(authors) if authors else author,
            "isbn": found_isbn or isbn,
            "publisher": volume_info.get("publisher"),
            "published_year": published_year,
            "pages": volume_info.get("pageCount"),
            "description": volume_info.get("description"),
            "cover_url": cover_url,
            "genre": categories[0] if categories else None,
        }
        return {key: value for key, value in metadata.items() if value is not None}

    async def fetch_metadata(self, title: str, author: str, isbn: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch metadata for a book from the first Google Books search result

        Args:
            title: Book title
            author: Book author
            isbn: Optional ISBN, used as the search key when its checksum is valid

        Returns:
            Dict of book fields, empty when nothing was found or the lookup failed
        """
        if isbn and ISBNValidator.is_valid_isbn(isbn):
            query = f"isbn:{ISBNValidator.normalize_isbn(isbn)}"
        else:
            query = f"{title} {author}"
        try:
            data = await self._make_api_request("volumes", {"q": query, "maxResults": 1})
        except (GoogleBooksAPIError, httpx.HTTPError) as e:
            logger.error(f"Failed to fetch metadata for '{title}': {e}")
            return {}

        items = (data or {}).get("items") or []
        if not items:
            logger.info(f"No metadata found in Google Books for: {query}")
            return {}

        metadata = self._parse_volume_info(items[0].get("volumeInfo") or {}, title, author, isbn)
        logger.info(f"Book found via Google Books: {metadata.get('title')} by {metadata.get('author')}")
        return metadata
