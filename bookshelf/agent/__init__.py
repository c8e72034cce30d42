"""AI assistant orchestration: conversation sessions, library tools and the model loop."""

from bookshelf.agent.agent import LibraryAgent
from bookshelf.agent.provider import (
    AnthropicProvider,
    LLMProvider,
    LLMProviderError,
    LLMProviderTimeout,
    MalformedReplyError,
    RateLimitExceeded,
)
from bookshelf.agent.session import ConversationSession, SessionRegistry
from bookshelf.agent.suggestions import extract_suggestions
from bookshelf.agent.tools import TOOL_DEFINITIONS, ToolDispatcher
from bookshelf.agent.types import AgentResponse, BookContext, QAPair

__all__ = [
    "AgentResponse",
    "AnthropicProvider",
    "BookContext",
    "ConversationSession",
    "LLMProvider",
    "LLMProviderError",
    "LLMProviderTimeout",
    "LibraryAgent",
    "MalformedReplyError",
    "QAPair",
    "RateLimitExceeded",
    "SessionRegistry",
    "TOOL_DEFINITIONS",
    "ToolDispatcher",
    "extract_suggestions",
]
