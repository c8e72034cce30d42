import httpx

from bookshelf.agent.provider import LLMProviderError
from bookshelf.services.google_books_service import GoogleBooksService
from bookshelf.services.http_client import SharedHTTPClient
from bookshelf.services.metadata_service import BookMetadataService, summary_prompt

VOLUME = {
    "totalItems": 1,
    "items": [{
        "volumeInfo": {
            "title": "Dune",
            "authors": ["Frank Herbert"],
            "publisher": "Ace",
            "publishedDate": "1990-09-01",
            "pageCount": 535,
            "description": "Desert planet politics.",
            "categories": ["Fiction", "Science Fiction"],
            "imageLinks": {"thumbnail": "http://books.google.com/cover.jpg"},
            "industryIdentifiers": [
                {"type": "OTHER", "identifier": "X"},
                {"type": "ISBN_13", "identifier": "9780441172719"},
            ],
        }
    }],
}


def google_books(handler):
    client = SharedHTTPClient(transport=httpx.MockTransport(handler))
    return GoogleBooksService(api_key=None, http_client=client)


class FakeProvider:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_text(self, prompt, max_tokens=500):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.text


async def test_fetch_metadata_maps_first_volume():
    seen = {}

    def handler(request):
        seen["q"] = request.url.params["q"]
        return httpx.Response(200, json=VOLUME)

    metadata = await google_books(handler).fetch_metadata("Dune", "Frank Herbert")

    assert seen["q"] == "Dune Frank Herbert"
    assert metadata == {
        "title": "Dune",
        "author": "Frank Herbert",
        "isbn": "9780441172719",
        "publisher": "Ace",
        "published_year": 1990,
        "pages": 535,
        "description": "Desert planet politics.",
        "cover_url": "https://books.google.com/cover.jpg",
        "genre": "Fiction",
    }


async def test_fetch_metadata_searches_by_isbn_when_given():
    seen = {}

    def handler(request):
        seen["q"] = request.url.params["q"]
        return httpx.Response(200, json={"totalItems": 0})

    assert await google_books(handler).fetch_metadata("Dune", "Frank Herbert", "9780441172719") == {}
    assert seen["q"] == "isbn:9780441172719"


async def test_fetch_metadata_failures_return_empty():
    assert await google_books(lambda r: httpx.Response(500)).fetch_metadata("Dune", "Herbert") == {}
    assert await google_books(lambda r: httpx.Response(429)).fetch_metadata("Dune", "Herbert") == {}
    assert await google_books(lambda r: httpx.Response(200, content=b"<html>")).fetch_metadata("Dune", "Herbert") == {}


async def test_enrich_merges_existing_values_and_summary():
    provider = FakeProvider(text="Paul goes to Arrakis.")
    service = BookMetadataService(google_books=google_books(lambda r: httpx.Response(200, json=VOLUME)),
                                  provider=provider)

    data = await service.enrich_book_data("Dune", "Frank Herbert", existing={"genre": "Sci-Fi", "tags": None})

    assert data["genre"] == "Sci-Fi"
    assert data["pages"] == 535
    assert data["summary"] == "Paul goes to Arrakis."
    assert "Desert planet politics." in provider.prompts[0]


async def test_enrich_without_summary_when_model_fails():
    service = BookMetadataService(google_books=google_books(lambda r: httpx.Response(200, json={"totalItems": 0})),
                                  provider=FakeProvider(error=LLMProviderError("down")))

    data = await service.enrich_book_data("Dune", "Frank Herbert", existing={"title": "Dune", "author": "Frank Herbert"})

    assert data == {"title": "Dune", "author": "Frank Herbert"}


def test_summary_prompt():
    assert "5-7 sentence summary" in summary_prompt("Dune", "Frank Herbert")
    assert "Here's the book description: Spice" in summary_prompt("Dune", "Frank Herbert", "Spice")


async def test_fetch_metadata_ignores_malformed_isbn():
    seen = {}

    def handler(request):
        seen["q"] = request.url.params["q"]
        return httpx.Response(200, json={"totalItems": 0})

    await google_books(handler).fetch_metadata("Dune", "Frank Herbert", "12-34")
    assert seen["q"] == "Dune Frank Herbert"


async def test_enrich_keeps_given_summary():
    provider = FakeProvider(text="Generated.")
    service = BookMetadataService(google_books=google_books(lambda r: httpx.Response(200, json=VOLUME)),
                                  provider=provider)

    data = await service.enrich_book_data("Dune", "Frank Herbert", existing={"summary": "Mine."})

    assert data["summary"] == "Mine."
    assert provider.prompts == []
