import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from bookshelf.agent.types import BookContext, Turn

logger = logging.getLogger(__name__)


@dataclass
class ConversationSession:
    """History and active book context of one conversation.

    ``lock`` serializes queries on the same session; different sessions run
    independently.
    """

    session_id: str
    history: List[Turn] = field(default_factory=list)
    active_context: Optional[BookContext] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def active_context_id(self) -> Optional[int]:
        return self.active_context.id if self.active_context is not None else None

    def switch_context(self, context: Optional[BookContext]) -> bool:
        """Record the context of a new query; clears history when its identity changed.

        Returns True when history was cleared.
        """
        new_id = context.id if context is not None else None
        changed = new_id != self.active_context_id
        if changed:
            logger.info("Session %s switched context %s -> %s, clearing %d turns",
                        self.session_id, self.active_context_id, new_id, len(self.history))
            self.history.clear()
        self.active_context = context
        return changed

    def clear(self) -> None:
        """Forget the conversation; the active context stays as it was."""
        self.history.clear()

    def append(self, turn: Turn) -> None:
        self.history.append(turn)

    def snapshot(self) -> List[Turn]:
        return list(self.history)


class SessionRegistry:
    """Maps session ids to conversations for the lifetime of the process.

    Sessions are never evicted.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, ConversationSession] = {}

    def get_or_create(self, session_id: str) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ConversationSession(session_id=session_id)
            self._sessions[session_id] = session
            logger.debug("Created conversation session %s", session_id)
        return session

    def get(self, session_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(session_id)

    def clear(self, session_id: str) -> bool:
        """Empty a session's history. Returns False when no such session exists."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.clear()
        return True

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
