import logging
from typing import Any, Dict, List, Optional, Sequence

from bookshelf.agent.prompts import FOLLOW_UP_SYSTEM_PROMPT, build_library_context, build_system_prompt
from bookshelf.agent.provider import LLMProvider
from bookshelf.agent.session import ConversationSession, SessionRegistry
from bookshelf.agent.suggestions import extract_suggestions
from bookshelf.agent.tools import ToolDispatcher
from bookshelf.agent.types import (
    AgentResponse,
    AssistantTurn,
    BookContext,
    ProviderReply,
    QAPair,
    ToolRequestBlock,
    ToolResultTurn,
    UserTurn,
)
from bookshelf.config import settings
from bookshelf.library import Library

logger = logging.getLogger(__name__)


class LibraryAgent:
    """Runs the tool-using conversation loop for the library assistant.

    Each query makes one provider call, then keeps calling back as long as the
    model requests a tool, up to ``max_iterations`` calls. Only the first tool
    request of a reply is executed.
    """

    def __init__(self, library: Library, provider: LLMProvider, registry: SessionRegistry,
                 dispatcher: Optional[ToolDispatcher] = None, max_iterations: Optional[int] = None,
                 answer_limit: Optional[int] = None, recent_books_limit: Optional[int] = None) -> None:
        self.library = library
        self.provider = provider
        self.registry = registry
        if dispatcher is None:
            dispatcher = ToolDispatcher(
                library,
                favorite_genre_limit=settings.recommendation_genre_limit,
                recommendation_limit=settings.recommendation_limit,
            )
        self.dispatcher = dispatcher
        self.max_iterations = settings.agent_max_iterations if max_iterations is None else max_iterations
        self.answer_limit = settings.qa_answer_max_chars if answer_limit is None else answer_limit
        self.recent_books_limit = settings.recent_books_limit if recent_books_limit is None else recent_books_limit
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

    def _main_system_prompt(self, context: Optional[BookContext], saved_qa: Sequence[QAPair]) -> str:
        library_context = build_library_context(
            self.library.get_statistics(),
            self.library.get_recent_books(self.recent_books_limit),
        )
        return build_system_prompt(library_context, context, saved_qa, self.answer_limit)

    async def _call(self, session: ConversationSession, system_prompt: str) -> ProviderReply:
        return await self.provider.complete(system_prompt, self.dispatcher.definitions, session.snapshot())

    async def query(self, message: str, context: Optional[BookContext] = None,
                    saved_qa: Optional[Sequence[QAPair]] = None,
                    session_id: Optional[str] = None) -> AgentResponse:
        """Answer one user message within a session.

        Provider errors propagate to the caller; turns appended before the
        failing call stay in the session history.
        """
        session = self.registry.get_or_create(session_id or settings.default_session_id)
        async with session.lock:
            session.switch_context(context)
            session.append(UserTurn(message))

            reply = await self._call(session, self._main_system_prompt(context, saved_qa or ()))
            calls = 1
            books: Optional[List[Dict[str, Any]]] = None
            recommendations: Optional[List[Dict[str, Any]]] = None

            while True:
                request = reply.first_tool_request
                if request is None:
                    text = reply.text
                    session.append(AssistantTurn(reply.blocks))
                    break
                if calls >= self.max_iterations:
                    logger.warning("Session %s hit the limit of %d model calls with a pending %s request",
                                   session.session_id, self.max_iterations, request.tool_name)
                    text = reply.text
                    break

                payload = self._run_tool(session, reply, request)
                if "books" in payload:
                    books = payload["books"]
                if "recommendations" in payload:
                    recommendations = payload["recommendations"]

                reply = await self._call(session, FOLLOW_UP_SYSTEM_PROMPT)
                calls += 1

        message_text, suggestions = extract_suggestions(text)
        return AgentResponse(message=message_text, books=books,
                             recommendations=recommendations, suggestions=suggestions)

    def _run_tool(self, session: ConversationSession, reply: ProviderReply,
                  request: ToolRequestBlock) -> Dict[str, Any]:
        session.append(AssistantTurn(reply.blocks))
        logger.info("Session %s dispatching %s(%s)", session.session_id, request.tool_name, request.arguments)
        payload = self.dispatcher.dispatch(request.tool_name, request.arguments)
        session.append(ToolResultTurn(request.invocation_id, payload))
        return payload

    def clear_history(self, session_id: Optional[str] = None) -> bool:
        return self.registry.clear(session_id or settings.default_session_id)
