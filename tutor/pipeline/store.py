"""Conversation history persistence boundary.

The orchestrator only needs two operations from storage. Real deployments
back this with their own database; ``InMemoryConversationStore`` serves
the CLI and tests.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Protocol

from tutor.models.conversation import ConversationMessage


class ConversationStore(Protocol):
    def get_recent_history(self, session_id: str, limit: int) -> list[ConversationMessage]: ...

    def append_message(self, session_id: str, message: ConversationMessage) -> None: ...


class InMemoryConversationStore:
    """Process-local store keyed by session id."""

    def __init__(self) -> None:
        self._messages: dict[str, list[ConversationMessage]] = defaultdict(list)
        self._lock = threading.Lock()

    def get_recent_history(self, session_id: str, limit: int) -> list[ConversationMessage]:
        """Return up to *limit* most recent messages, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._messages.get(session_id, [])[-limit:])

    def append_message(self, session_id: str, message: ConversationMessage) -> None:
        with self._lock:
            self._messages[session_id].append(message)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._messages.pop(session_id, None)
