from typing import Dict, Optional, Sequence

from bookshelf.agent.suggestions import SUGGESTIONS_MARKER
from bookshelf.agent.types import BookContext, QAPair
from bookshelf.book import Book

SUGGESTIONS_INSTRUCTION = f"""IMPORTANT: At the end of your response, always suggest 3 relevant follow-up questions or actions the user might want to take. Format them as:
{SUGGESTIONS_MARKER}
1. [First suggestion]
2. [Second suggestion]
3. [Third suggestion]"""

FOLLOW_UP_SYSTEM_PROMPT = f"""You are an AI assistant for a personal library management system. Provide a complete, final response based on the tool results. Never say things like "Let me check", "I'll look that up", or "It looks like I need to". Just provide the direct answer.

IMPORTANT: At the end of your response, always suggest 3 relevant follow-up questions. Format them as:
{SUGGESTIONS_MARKER}
1. [First suggestion]
2. [Second suggestion]
3. [Third suggestion]"""


def truncate_answer(answer: str, limit: int) -> str:
    if len(answer) <= limit:
        return answer
    return answer[:limit] + "..."


def build_library_context(stats: Dict[str, int], recent_books: Sequence[Book]) -> str:
    """Statistics and recently added books, as embedded in the system prompt."""
    lines = [
        "Library Statistics:",
        f"- Total books: {stats.get('total', 0)}",
        f"- Completed: {stats.get('completed', 0)}",
        f"- Currently reading: {stats.get('reading', 0)}",
        f"- Want to read: {stats.get('wantToRead', 0)}",
        f"- On hold: {stats.get('onHold', 0)}",
        "",
        "Recently added books:",
    ]
    lines.extend(f'- "{b.title}" by {b.author} ({b.status})' for b in recent_books)
    return "\n".join(lines).strip()


def _saved_qa_block(saved_qa: Sequence[QAPair], answer_limit: int, subject: str = "THIS BOOK") -> str:
    entries = [
        f"Q{i}: {qa.question}\nA{i}: {truncate_answer(qa.answer, answer_limit)}"
        for i, qa in enumerate(saved_qa, 1)
    ]
    return (
        f"PREVIOUS Q&A ABOUT {subject}:\n"
        + "\n\n".join(entries)
        + "\n\nWhen generating follow-up suggestions, consider what topics have already been "
        "discussed and suggest NEW angles or deeper exploration."
    )


def _book_context_block(context: BookContext, saved_qa: Sequence[QAPair], answer_limit: int) -> str:
    lines = [
        "CURRENTLY SELECTED BOOK:",
        f'- Title: "{context.title}"',
        f"- Author: {context.author}",
        f"- Book ID: {context.id}",
    ]
    if context.genre:
        lines.append(f"- Genre: {context.genre}")
    if context.tags:
        lines.append(f"- Tags: {context.tags}")
    if context.summary:
        lines.append(f"- Summary: {context.summary}")
    if saved_qa:
        lines.extend(["", _saved_qa_block(saved_qa, answer_limit)])
    lines.extend([
        "",
        "The user is asking about this specific book. Focus your responses on this book "
        "unless they explicitly ask about something else.",
    ])
    return "\n".join(lines)


def build_system_prompt(library_context: str, context: Optional[BookContext] = None,
                        saved_qa: Sequence[QAPair] = (), answer_limit: int = 300) -> str:
    """Main system prompt for the first call of a query.

    Saved Q&A belongs to the selected book when there is one, otherwise to the
    library as a whole.
    """
    sections = [
        "You are an AI assistant for a personal library management system. You help users "
        "manage their book collection, search for books, get recommendations, and track "
        "their reading progress.",
        "Current Library Context:\n" + library_context,
    ]
    if context is not None:
        sections.append(_book_context_block(context, saved_qa, answer_limit))
    elif saved_qa:
        sections.append(_saved_qa_block(saved_qa, answer_limit, subject="THIS LIBRARY"))

    guidelines = [
        "Guidelines:",
        "- Be conversational and helpful",
        "- Use the available tools to access library data",
        "- Provide personalized book recommendations based on the user's collection",
        "- Help users discover books they might enjoy",
        "- Track reading progress and suggest what to read next",
        "- When discussing books, include relevant details like title, author, and status",
        '- Be proactive in suggesting books from their "want-to-read" list',
    ]
    if context is not None:
        guidelines.append(f'- Focus on the currently selected book "{context.title}" unless asked otherwise')
    sections.append("\n".join(guidelines))
    sections.append(SUGGESTIONS_INSTRUCTION)
    return "\n\n".join(sections)
