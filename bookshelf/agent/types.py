"""Vendor-neutral conversation types shared by the agent loop and its providers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolRequestBlock:
    invocation_id: str
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


ContentBlock = Union[TextBlock, ToolRequestBlock]


@dataclass(frozen=True)
class UserTurn:
    text: str


@dataclass(frozen=True)
class AssistantTurn:
    blocks: Tuple[ContentBlock, ...]


@dataclass(frozen=True)
class ToolResultTurn:
    invocation_id: str
    payload: Dict[str, Any]


Turn = Union[UserTurn, AssistantTurn, ToolResultTurn]


class StopReason(str, enum.Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    OTHER = "other"


@dataclass(frozen=True)
class ProviderReply:
    blocks: Tuple[ContentBlock, ...]
    stop_reason: StopReason = StopReason.END_TURN

    @property
    def text(self) -> str:
        """All text blocks of the reply, in order, separated by blank lines."""
        return "\n\n".join(b.text for b in self.blocks if isinstance(b, TextBlock) and b.text)

    @property
    def first_tool_request(self) -> Optional[ToolRequestBlock]:
        for block in self.blocks:
            if isinstance(block, ToolRequestBlock):
                return block
        return None


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


@dataclass(frozen=True)
class BookContext:
    """The book a conversation is currently about."""

    id: int
    title: str
    author: str
    summary: Optional[str] = None
    genre: Optional[str] = None
    tags: Optional[str] = None


@dataclass(frozen=True)
class QAPair:
    question: str
    answer: str


@dataclass
class AgentResponse:
    message: str
    books: Optional[List[Dict[str, Any]]] = None
    recommendations: Optional[List[Dict[str, Any]]] = None
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "books": self.books,
            "recommendations": self.recommendations,
            "suggestions": list(self.suggestions),
        }
