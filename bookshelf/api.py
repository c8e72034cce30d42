import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from bookshelf.agent import (
    AnthropicProvider,
    BookContext,
    LibraryAgent,
    LLMProvider,
    LLMProviderError,
    QAPair,
    SessionRegistry,
)
from bookshelf.book import Book, Note, SavedQA
from bookshelf.config import settings
from bookshelf.library import Library
from bookshelf.services.http_client import cleanup_http_client, get_http_client
from bookshelf.services.metadata_service import BookMetadataService

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Conversations live as long as the app does
    app.state.session_registry = SessionRegistry()
    await get_http_client()
    try:
        yield
    finally:
        await cleanup_http_client()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Dependencies ---
# Overridden through app.dependency_overrides in tests.
@lru_cache
def get_library() -> Library:
    return Library()


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


@lru_cache
def get_provider() -> LLMProvider:
    return AnthropicProvider()


def get_agent(library: Library = Depends(get_library),
              provider: LLMProvider = Depends(get_provider),
              registry: SessionRegistry = Depends(get_session_registry)) -> LibraryAgent:
    return LibraryAgent(library, provider, registry)


def get_metadata_service(provider: LLMProvider = Depends(get_provider)) -> BookMetadataService:
    # Without a key the lookup still runs, only the summary is skipped
    return BookMetadataService(provider=provider if settings.anthropic_api_key else None)


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that validates the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    isbn: str | None = None
    publisher: str | None = None
    published_year: int | None = None
    genre: str | None = None
    pages: int | None = None
    language: str | None = None
    description: str | None = None
    cover_url: str | None = None
    summary: str | None = None
    status: str
    rating: int | None = None
    date_added: str
    date_started: str | None = None
    date_completed: str | None = None
    current_page: int = 0
    tags: str | None = None


class BookCreateModel(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    isbn: str | None = None
    publisher: str | None = None
    published_year: int | None = None
    genre: str | None = None
    pages: int | None = None
    language: str | None = None
    description: str | None = None
    cover_url: str | None = None
    summary: str | None = None
    status: str = "want-to-read"
    rating: int | None = None
    current_page: int | None = None
    tags: str | None = None
    fetch_metadata: bool = Field(default=True, description="Look up missing fields on Google Books")


class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    publisher: str | None = None
    published_year: int | None = None
    genre: str | None = None
    pages: int | None = None
    language: str | None = None
    description: str | None = None
    cover_url: str | None = None
    summary: str | None = None
    status: str | None = None
    rating: int | None = None
    date_started: str | None = None
    date_completed: str | None = None
    current_page: int | None = None
    tags: str | None = None


class BookListResponse(BaseModel):
    books: List[BookModel]
    count: int


class NoteModel(BaseModel):
    id: int
    book_id: int
    content: str
    page_number: int | None = None
    type: str
    created_at: str
    updated_at: str | None = None


class NoteCreateModel(BaseModel):
    content: str = Field(min_length=1)
    page_number: int | None = None
    type: str = "note"


class NoteUpdateModel(BaseModel):
    content: str = Field(min_length=1)


class BookDetailResponse(BaseModel):
    book: BookModel
    notes: List[NoteModel]


class SavedQAModel(BaseModel):
    id: int
    book_id: int | None = None
    question: str
    answer: str
    suggestions: str | None = None
    hidden: bool
    created_at: str


class SavedQACreateModel(BaseModel):
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    suggestions: str | None = None
    hidden: bool = False


class SavedQAListResponse(BaseModel):
    savedQA: List[SavedQAModel]
    count: int
    hiddenCount: int


class StatsModel(BaseModel):
    total: int
    completed: int
    reading: int
    wantToRead: int
    onHold: int


class BookContextModel(BaseModel):
    id: int
    title: str
    author: str
    summary: str | None = None
    genre: str | None = None
    tags: str | None = None


class AIQueryRequest(BaseModel):
    message: str = Field(min_length=1)
    session_id: str = Field(default_factory=lambda: settings.default_session_id)
    book_context: BookContextModel | None = None


class AIClearRequest(BaseModel):
    session_id: str = Field(default_factory=lambda: settings.default_session_id)


class AIResponseModel(BaseModel):
    message: str
    books: List[Dict[str, Any]] | None = None
    recommendations: List[Dict[str, Any]] | None = None
    suggestions: List[str]


class CreatedResponse(BaseModel):
    id: int
    message: str


class MessageResponse(BaseModel):
    message: str


# --- Helpers ---
def _book_or_404(library: Library, book_id: int) -> Book:
    book = library.get_book_by_id(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


def _book_list(books: List[Book]) -> Dict[str, Any]:
    return {"books": [b.to_dict() for b in books], "count": len(books)}


# --- Health ---
@app.get("/api/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now().isoformat(), "version": settings.app_version}


# --- Books ---
@app.get("/api/books", response_model=BookListResponse)
def list_books(status: Optional[str] = None, genre: Optional[str] = None, tag: Optional[str] = None,
               sort_by: str = "date_added", sort_order: str = Query("desc", pattern="^(asc|desc)$"),
               library: Library = Depends(get_library)):
    return _book_list(library.get_all_books(status=status, genre=genre, tag=tag,
                                            sort_by=sort_by, sort_order=sort_order))


@app.get("/api/books/by-tags", response_model=BookListResponse)
def books_by_tags(tags: str = Query(..., min_length=1, description="Comma-separated tags"),
                  library: Library = Depends(get_library)):
    return _book_list(library.get_books_by_tags(tags.split(",")))


@app.get("/api/books/{book_id}", response_model=BookDetailResponse)
def get_book(book_id: int, library: Library = Depends(get_library)):
    book = _book_or_404(library, book_id)
    notes = library.get_notes_by_book_id(book_id)
    return {"book": book.to_dict(), "notes": [n.to_dict() for n in notes]}


@app.post("/api/books", response_model=CreatedResponse, status_code=201, dependencies=[Depends(get_api_key)])
async def create_book(payload: BookCreateModel, library: Library = Depends(get_library),
                      metadata_service: BookMetadataService = Depends(get_metadata_service)):
    data = payload.model_dump(exclude={"fetch_metadata"})
    if payload.fetch_metadata and settings.enable_metadata_fetch:
        provided = {k: v for k, v in data.items() if v is not None}
        data = await metadata_service.enrich_book_data(payload.title, payload.author, payload.isbn,
                                                       existing=provided)
    try:
        book_id = library.add_book(Book.from_dict(data))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": book_id, "message": "Book added successfully"}


@app.put("/api/books/{book_id}", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def update_book(book_id: int, payload: BookUpdateModel, library: Library = Depends(get_library)):
    updates = payload.model_dump(exclude_unset=True)
    try:
        updated = library.update_book(book_id, updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"message": "Book updated successfully"}


@app.delete("/api/books/{book_id}", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def delete_book(book_id: int, library: Library = Depends(get_library)):
    if not library.delete_book(book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    return {"message": "Book deleted successfully"}


@app.get("/api/genres")
def list_genres(library: Library = Depends(get_library)):
    return {"genres": library.get_unique_genres()}


@app.get("/api/tags")
def list_tags(library: Library = Depends(get_library)):
    return {"tags": library.get_unique_tags()}


@app.get("/api/search", response_model=BookListResponse)
def search(q: str = "", library: Library = Depends(get_library)):
    return _book_list(library.search_books(q))


@app.get("/api/statistics", response_model=StatsModel)
def statistics(library: Library = Depends(get_library)):
    return library.get_statistics()


# --- Notes ---
@app.get("/api/books/{book_id}/notes")
def list_notes(book_id: int, library: Library = Depends(get_library)):
    notes = library.get_notes_by_book_id(book_id)
    return {"notes": [n.to_dict() for n in notes], "count": len(notes)}


@app.post("/api/books/{book_id}/notes", response_model=CreatedResponse, status_code=201,
          dependencies=[Depends(get_api_key)])
def create_note(book_id: int, payload: NoteCreateModel, library: Library = Depends(get_library)):
    _book_or_404(library, book_id)
    try:
        note_id = library.add_note(Note(book_id=book_id, content=payload.content,
                                        page_number=payload.page_number, type=payload.type))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": note_id, "message": "Note added successfully"}


@app.put("/api/notes/{note_id}", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def update_note(note_id: int, payload: NoteUpdateModel, library: Library = Depends(get_library)):
    if not library.update_note(note_id, payload.content):
        raise HTTPException(status_code=404, detail="Note not found")
    return {"message": "Note updated successfully"}


@app.delete("/api/notes/{note_id}", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def delete_note(note_id: int, library: Library = Depends(get_library)):
    if not library.delete_note(note_id):
        raise HTTPException(status_code=404, detail="Note not found")
    return {"message": "Note deleted successfully"}


# --- Saved Q&A ---
@app.get("/api/books/{book_id}/qa", response_model=SavedQAListResponse)
def list_book_qa(book_id: int, include_hidden: bool = False, library: Library = Depends(get_library)):
    saved = library.get_saved_qa_by_book_id(book_id, include_hidden=include_hidden)
    return {
        "savedQA": [qa.to_dict() for qa in saved],
        "count": len(saved),
        "hiddenCount": library.get_hidden_qa_count(book_id),
    }


@app.post("/api/books/{book_id}/qa", response_model=CreatedResponse, status_code=201,
          dependencies=[Depends(get_api_key)])
def create_book_qa(book_id: int, payload: SavedQACreateModel, library: Library = Depends(get_library)):
    _book_or_404(library, book_id)
    qa_id = library.save_qa(SavedQA(book_id=book_id, **payload.model_dump()))
    return {"id": qa_id, "message": "Q&A saved successfully"}


@app.get("/api/library/qa", response_model=SavedQAListResponse)
def list_library_qa(include_hidden: bool = False, library: Library = Depends(get_library)):
    saved = library.get_library_qa(include_hidden=include_hidden)
    return {
        "savedQA": [qa.to_dict() for qa in saved],
        "count": len(saved),
        "hiddenCount": library.get_hidden_qa_count(None),
    }


@app.post("/api/library/qa", response_model=CreatedResponse, status_code=201,
          dependencies=[Depends(get_api_key)])
def create_library_qa(payload: SavedQACreateModel, library: Library = Depends(get_library)):
    qa_id = library.save_qa(SavedQA(book_id=None, **payload.model_dump()))
    return {"id": qa_id, "message": "Q&A saved successfully"}


@app.put("/api/qa/{qa_id}/hide", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def hide_qa(qa_id: int, library: Library = Depends(get_library)):
    if not library.hide_qa(qa_id):
        raise HTTPException(status_code=404, detail="Saved Q&A not found")
    return {"message": "Q&A hidden successfully"}


@app.put("/api/qa/{qa_id}/unhide", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def unhide_qa(qa_id: int, library: Library = Depends(get_library)):
    if not library.unhide_qa(qa_id):
        raise HTTPException(status_code=404, detail="Saved Q&A not found")
    return {"message": "Q&A unhidden successfully"}


@app.delete("/api/qa/{qa_id}", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def delete_qa(qa_id: int, library: Library = Depends(get_library)):
    if not library.delete_saved_qa(qa_id):
        raise HTTPException(status_code=404, detail="Saved Q&A not found")
    return {"message": "Q&A deleted successfully"}


# --- AI assistant ---
@app.post("/api/ai/query", response_model=AIResponseModel, dependencies=[Depends(get_api_key)])
async def ai_query(payload: AIQueryRequest, library: Library = Depends(get_library),
                   agent: LibraryAgent = Depends(get_agent)):
    if not settings.enable_ai_features:
        raise HTTPException(status_code=503, detail="AI features are disabled")

    context = None
    if payload.book_context is not None:
        context = BookContext(**payload.book_context.model_dump())
        saved = library.get_saved_qa_by_book_id(context.id)
    else:
        saved = library.get_library_qa()
    saved_qa = [QAPair(qa.question, qa.answer) for qa in saved]

    try:
        response = await asyncio.wait_for(
            agent.query(payload.message, context=context, saved_qa=saved_qa, session_id=payload.session_id),
            timeout=settings.ai_request_timeout,
        )
    except asyncio.TimeoutError:
        logger.error("AI query for session %s timed out after %ss", payload.session_id, settings.ai_request_timeout)
        raise HTTPException(status_code=504, detail="The assistant took too long to answer. Please try again.")
    except LLMProviderError as e:
        logger.error("AI query for session %s failed: %s", payload.session_id, e)
        raise HTTPException(status_code=502, detail="The assistant is unavailable right now. Please try again.")
    return response.to_dict()


@app.post("/api/ai/clear", response_model=MessageResponse, dependencies=[Depends(get_api_key)])
def ai_clear(payload: Optional[AIClearRequest] = None,
             registry: SessionRegistry = Depends(get_session_registry)):
    registry.clear(payload.session_id if payload else settings.default_session_id)
    return {"message": "Conversation history cleared"}
