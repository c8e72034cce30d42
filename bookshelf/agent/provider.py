import abc
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from bookshelf.agent.types import (
    AssistantTurn,
    ContentBlock,
    ProviderReply,
    StopReason,
    TextBlock,
    ToolDefinition,
    ToolRequestBlock,
    ToolResultTurn,
    Turn,
    UserTurn,
)
from bookshelf.config import settings
from bookshelf.services.http_client import SharedHTTPClient, get_http_client

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

_STOP_REASONS = {
    "end_turn": StopReason.END_TURN,
    "stop_sequence": StopReason.END_TURN,
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
}


class LLMProviderError(Exception):
    """Raised when the language model service fails or rejects a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMProviderTimeout(LLMProviderError):
    """Exception raised when the language model does not answer in time"""
    pass


class RateLimitExceeded(LLMProviderError):
    """Exception raised when rate limit is exceeded"""
    pass


class MalformedReplyError(LLMProviderError):
    """Exception raised when a reply cannot be parsed"""
    pass


class LLMProvider(abc.ABC):
    """A language model that can answer a conversation and request tools."""

    @abc.abstractmethod
    async def complete(self, system_prompt: str, tools: Sequence[ToolDefinition],
                       history: Sequence[Turn], max_tokens: Optional[int] = None) -> ProviderReply:
        """Send the conversation and return the model's next reply.

        ``max_tokens`` caps the reply length; None means the provider default.
        """

    async def generate_text(self, prompt: str, max_tokens: int = 500) -> str:
        """One-shot completion of a single prompt, without tools."""
        reply = await self.complete("", [], [UserTurn(prompt)], max_tokens=max_tokens)
        return reply.text.strip()


def _turn_to_message(turn: Turn) -> Optional[Dict[str, Any]]:
    """Wire form of one turn; None for an assistant turn with nothing left to send."""
    if isinstance(turn, UserTurn):
        return {"role": "user", "content": turn.text}
    if isinstance(turn, AssistantTurn):
        content = []
        for block in turn.blocks:
            if isinstance(block, TextBlock):
                # the API rejects empty text blocks
                if not block.text:
                    continue
                content.append({"type": "text", "text": block.text})
            else:
                content.append({
                    "type": "tool_use",
                    "id": block.invocation_id,
                    "name": block.tool_name,
                    "input": block.arguments,
                })
        if not content:
            return None
        return {"role": "assistant", "content": content}
    if isinstance(turn, ToolResultTurn):
        return {
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": turn.invocation_id,
                "content": json.dumps(turn.payload, ensure_ascii=False),
            }],
        }
    raise TypeError(f"Unsupported turn type: {type(turn).__name__}")


def _history_to_messages(history: Sequence[Turn]) -> List[Dict[str, Any]]:
    messages = (_turn_to_message(turn) for turn in history)
    return [message for message in messages if message is not None]


def _parse_block(raw: Dict[str, Any]) -> Optional[ContentBlock]:
    kind = raw.get("type")
    if kind == "text":
        return TextBlock(text=raw.get("text") or "")
    if kind == "tool_use":
        try:
            return ToolRequestBlock(
                invocation_id=raw["id"],
                tool_name=raw["name"],
                arguments=raw.get("input") or {},
            )
        except KeyError as e:
            raise MalformedReplyError(f"tool_use block without {e}") from e
    # thinking, server tool results and future block kinds are not part of the conversation model
    logger.debug("Skipping content block of type %r", kind)
    return None


class AnthropicProvider(LLMProvider):
    """Claude via the Anthropic Messages API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 base_url: Optional[str] = None, max_tokens: Optional[int] = None,
                 timeout: Optional[float] = None, http_client: Optional[SharedHTTPClient] = None):
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model or settings.anthropic_model
        self.base_url = (base_url or settings.anthropic_base_url).rstrip("/")
        self.max_tokens = max_tokens or settings.anthropic_max_tokens
        self.timeout = timeout or settings.llm_timeout
        self._http_client = http_client

    async def _client(self) -> SharedHTTPClient:
        if self._http_client is None:
            self._http_client = await get_http_client()
        return self._http_client

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise LLMProviderError("Anthropic API key not configured")
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def build_payload(self, system_prompt: str, tools: Sequence[ToolDefinition],
                      history: Sequence[Turn], max_tokens: Optional[int] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": _history_to_messages(history),
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tools:
            payload["tools"] = [tool.to_dict() for tool in tools]
        return payload

    @staticmethod
    def parse_reply(data: Any) -> ProviderReply:
        if not isinstance(data, dict) or not isinstance(data.get("content"), list):
            raise MalformedReplyError("Reply has no content list")
        blocks: List[ContentBlock] = []
        for raw in data["content"]:
            if not isinstance(raw, dict):
                raise MalformedReplyError("Content block is not an object")
            block = _parse_block(raw)
            if block is not None:
                blocks.append(block)
        stop_reason = _STOP_REASONS.get(data.get("stop_reason"), StopReason.OTHER)
        return ProviderReply(blocks=tuple(blocks), stop_reason=stop_reason)

    async def _post(self, payload: Dict[str, Any]) -> ProviderReply:
        url = f"{self.base_url}/v1/messages"
        headers = self._headers()
        client = await self._client()
        try:
            response = await client.post(url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.error(f"LLM request timed out after {self.timeout}s")
            raise LLMProviderTimeout(f"Request timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            logger.error(f"LLM request failed: {e}")
            raise LLMProviderError(f"Request failed: {e}") from e

        if response.status_code == 429:
            logger.warning("Rate limit exceeded for Anthropic API")
            raise RateLimitExceeded("Rate limit exceeded", status_code=429)
        if response.status_code >= 400:
            logger.error(f"API request failed: {response.status_code} - {response.text}")
            raise LLMProviderError(f"API request failed with status {response.status_code}",
                                   status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedReplyError("Reply is not valid JSON") from e
        return self.parse_reply(data)

    async def complete(self, system_prompt: str, tools: Sequence[ToolDefinition],
                       history: Sequence[Turn], max_tokens: Optional[int] = None) -> ProviderReply:
        payload = self.build_payload(system_prompt, tools, history, max_tokens=max_tokens)
        logger.debug("Calling %s with %d turns and %d tools", self.model, len(history), len(tools))
        reply = await self._post(payload)
        logger.debug("Reply stop_reason=%s blocks=%d", reply.stop_reason.value, len(reply.blocks))
        return reply
