import os
from typing import List, Sequence

import pytest

import bookshelf.database as database
from bookshelf.agent.provider import LLMProvider
from bookshelf.agent.types import ProviderReply, StopReason, TextBlock, ToolRequestBlock
from bookshelf.book import Book
from bookshelf.library import Library


@pytest.fixture
def lib(tmp_path, request, monkeypatch):
    # Unique database per test; Library() built elsewhere (CLI, API) picks it up too
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setattr(database, "DATABASE_FILE", db_file)
    lib = Library(db_file=db_file)
    yield lib
    lib.close()
    if os.path.exists(db_file):
        os.remove(db_file)


@pytest.fixture
def add_book(lib):
    """Factory that inserts a book and returns it with its id set."""
    def _add(title: str, author: str = "Some Author", **fields) -> Book:
        book = Book(title=title, author=author, **fields)
        lib.add_book(book)
        return book
    return _add


def text_reply(text: str) -> ProviderReply:
    return ProviderReply(blocks=(TextBlock(text),), stop_reason=StopReason.END_TURN)


def tool_reply(*requests, text: str = "") -> ProviderReply:
    """Reply requesting tools; each request is a (tool_name, arguments) pair."""
    blocks = [TextBlock(text)] if text else []
    for i, (name, arguments) in enumerate(requests):
        blocks.append(ToolRequestBlock(invocation_id=f"toolu_{i}", tool_name=name, arguments=arguments))
    return ProviderReply(blocks=tuple(blocks), stop_reason=StopReason.TOOL_USE)


class ScriptedProvider(LLMProvider):
    """Returns canned replies in order and records every call it receives.

    When the script runs out the last reply is repeated.
    """

    def __init__(self, replies: Sequence[ProviderReply] = (), error: Exception = None):
        self.replies: List[ProviderReply] = list(replies)
        self.error = error
        self.calls = []

    async def complete(self, system_prompt, tools, history, max_tokens=None):
        self.calls.append({"system_prompt": system_prompt, "tools": list(tools), "history": list(history),
                           "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        index = min(len(self.calls), len(self.replies)) - 1
        return self.replies[index]


@pytest.fixture
def scripted():
    """Build a ScriptedProvider: scripted(reply1, reply2, ...) or scripted(error=exc)."""
    def _make(*replies, error=None):
        return ScriptedProvider(replies, error=error)
    return _make


@pytest.fixture
def replies():
    """Reply builders for ScriptedProvider scripts."""
    class _Replies:
        text = staticmethod(text_reply)
        tool = staticmethod(tool_reply)
    return _Replies
