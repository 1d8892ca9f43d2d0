"""Conversation history owned by a session."""
import time
from dataclasses import dataclass, field
from typing import List, Optional

from ..messages import HistoryTurn, Role


@dataclass(frozen=True)
class HistoryEntry:
    """A single entry in the conversation."""
    role: Role
    text: str
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_wire(self) -> HistoryTurn:
        return HistoryTurn(role=self.role, text=self.text, timestamp=self.timestamp)


class ConversationHistory:
    """Append-only conversation history.

    Entries are never edited or removed individually; the whole history is
    cleared only when a new connection starts. Only the most recent
    ``history_window`` entries are sent as context with each request.
    """

    def __init__(self, history_window: int = 10):
        self.history_window = history_window
        self._entries: List[HistoryEntry] = []

    def add_user_message(self, text: str) -> HistoryEntry:
        """Add a user message to the conversation."""
        return self._append(Role.USER, text)

    def add_assistant_message(self, text: str) -> HistoryEntry:
        """Add an assistant message to the conversation."""
        return self._append(Role.ASSISTANT, text)

    def _append(self, role: Role, text: str) -> HistoryEntry:
        entry = HistoryEntry(role=role, text=text.strip())
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> List[HistoryEntry]:
        """A copy of all entries, oldest first."""
        return list(self._entries)

    def recent(self, n: Optional[int] = None) -> List[HistoryEntry]:
        """The last ``n`` entries (defaults to the context window)."""
        if n is None:
            n = self.history_window
        if n <= 0:
            return []
        return self._entries[-n:]

    def to_wire(self, n: Optional[int] = None) -> List[HistoryTurn]:
        """Recent entries as wire models for the response endpoint."""
        return [entry.to_wire() for entry in self.recent(n)]

    def clear(self) -> None:
        """Clear all conversation history."""
        self._entries.clear()

    def is_empty(self) -> bool:
        return len(self._entries) == 0

    def __len__(self) -> int:
        return len(self._entries)
