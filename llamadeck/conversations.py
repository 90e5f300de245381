"""
ConversationStore — the in-memory collection of conversations plus the
"current" selection.

Conversations are never removed implicitly: only delete() and clear_all()
destroy them. Messages are append-only, and updated_at never moves backwards.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from llamadeck.models import Conversation, Message

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50


def title_from_content(content: str) -> str:
    """First 50 characters plus an ellipsis, or the content verbatim."""
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + "..."
    return content


class ConversationStore:
    """Thread-safe conversation collection, newest first."""

    def __init__(self):
        self._conversations: list[Conversation] = []
        self._current_id: str | None = None
        self._lock = threading.Lock()

    def _find(self, conversation_id: str) -> Conversation | None:
        for conv in self._conversations:
            if conv.id == conversation_id:
                return conv
        return None

    @staticmethod
    def _touch(conv: Conversation):
        now = datetime.now(timezone.utc)
        conv.updated_at = max(conv.updated_at, now)

    @property
    def conversations(self) -> list[Conversation]:
        with self._lock:
            return list(self._conversations)

    @property
    def current(self) -> Conversation | None:
        with self._lock:
            if self._current_id is None:
                return None
            return self._find(self._current_id)

    @property
    def has_conversations(self) -> bool:
        return bool(self._conversations)

    def create(self, title: str | None = None) -> Conversation:
        """New empty conversation; it becomes current."""
        conv = Conversation(title=title or "New Conversation")
        with self._lock:
            self._conversations.insert(0, conv)
            self._current_id = conv.id
        logger.debug("Created conversation %s", conv.id)
        return conv

    def select(self, conversation_id: str) -> Conversation | None:
        """Make a conversation current. Unknown ids leave nothing selected."""
        with self._lock:
            conv = self._find(conversation_id)
            self._current_id = conv.id if conv else None
        return conv

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            conv = self._find(conversation_id)
            if conv is None:
                return False
            self._conversations.remove(conv)
            if self._current_id == conversation_id:
                self._current_id = None
        logger.debug("Deleted conversation %s", conversation_id)
        return True

    def clear_all(self):
        with self._lock:
            self._conversations.clear()
            self._current_id = None

    def append(self, conversation_id: str, message: Message) -> Conversation:
        """
        Append a message. The first message of a conversation also becomes
        its title. Raises KeyError for unknown ids.
        """
        with self._lock:
            conv = self._find(conversation_id)
            if conv is None:
                raise KeyError(conversation_id)
            was_empty = not conv.messages
            conv.messages.append(message)
            if was_empty:
                conv.title = title_from_content(message.content)
            self._touch(conv)
        return conv

    def retitle(self, conversation_id: str, content: str) -> Conversation:
        with self._lock:
            conv = self._find(conversation_id)
            if conv is None:
                raise KeyError(conversation_id)
            conv.title = title_from_content(content)
            self._touch(conv)
        return conv

    def export(self) -> list[dict]:
        """All conversations as JSON-ready dicts."""
        with self._lock:
            return [conv.to_dict() for conv in self._conversations]
