"""Core module (conversation session)."""
from .session import ConversationSession, create_session

__all__ = [
    "ConversationSession",
    "create_session",
]
