from collections import deque
from typing import Optional

from models import Message

import config


class ConversationSession:
    """Bounded chat history for one user, used to build the next prompt.

    Holds at most ``limit`` messages; appending past the limit drops the
    oldest ones first.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit if limit is not None else config.HISTORY_LIMIT
        if self.limit < 1:
            raise ValueError("history limit must be at least 1")
        self._messages: deque[Message] = deque(maxlen=self.limit)

    def append(self, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        self._messages.append(message)
        return message

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)


class SessionRegistry:
    """One ConversationSession per user id, created on first use."""

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        self._sessions: dict[str, ConversationSession] = {}

    def get(self, user_id: str) -> ConversationSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = ConversationSession(self.limit)
            self._sessions[user_id] = session
        return session

    def reset(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)
