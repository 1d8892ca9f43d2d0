"""Wire models for the collaborator endpoints and the embedding application.

The request models are sent to the transcription, response-generation and
speech-synthesis endpoints; the response models are parsed from them. All
models use Pydantic v2 with camelCase aliases where the endpoints expect
them.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"


class Priority(str, Enum):
    """Playback priority hint returned with a reply."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WireModel(BaseModel):
    """Base class for outgoing messages.

    Unknown fields are rejected so that typos never reach an endpoint.
    """

    model_config = ConfigDict(
        use_enum_values=True,
        extra="forbid",
        populate_by_name=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize message to dictionary."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class EndpointReply(BaseModel):
    """Base class for parsed endpoint replies.

    Endpoints add diagnostic fields freely, so extras are ignored.
    """

    model_config = ConfigDict(
        use_enum_values=True,
        extra="ignore",
        populate_by_name=True,
    )


# =============================================================================
# Conversation history
# =============================================================================


class HistoryTurn(WireModel):
    """One history entry as sent to the response endpoint.

    Example:
        {"role": "user", "text": "Hello", "timestamp": 1718000000000}
    """

    role: Role
    text: str
    timestamp: Optional[int] = Field(
        default=None,
        description="Unix timestamp in milliseconds",
        ge=0,
    )


# =============================================================================
# Transcription endpoint
# =============================================================================


class TranscriptionReply(EndpointReply):
    """Transcription endpoint reply.

    Example:
        {"success": true, "transcription": "I want to save a memory"}
        {"success": false, "reason": "Audio too short or silent"}
    """

    success: bool = False
    transcription: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Response generation endpoint
# =============================================================================


class ResponseRequest(WireModel):
    """Request sent to the response generation endpoint.

    Example:
        {
            "message": "I want to save a memory",
            "sessionId": "3f2a...",
            "conversationHistory": [{"role": "assistant", "text": "Hi!"}]
        }
    """

    message: str = Field(..., min_length=1)
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    conversation_history: List[HistoryTurn] = Field(
        default_factory=list,
        alias="conversationHistory",
    )


class ResponseReply(EndpointReply):
    """Non-streamed reply of the response generation endpoint.

    Example:
        {"success": true, "response": "Tell me more!", "priority": "high"}
    """

    success: bool = True
    response: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    priority: Optional[Priority] = None
    error: Optional[str] = None


class StreamDelta(EndpointReply):
    """One server-sent event of a streamed reply.

    Example:
        data: {"content": "Tell me"}
        data: {"done": true}
    """

    content: Optional[str] = None
    done: bool = False


# =============================================================================
# Speech synthesis endpoint
# =============================================================================


class SynthesisRequest(WireModel):
    """Request sent to the speech synthesis endpoint.

    Example:
        {"text": "Tell me more!", "priority": "high"}
    """

    text: str = Field(..., min_length=1)
    priority: Optional[Priority] = None
    voice: Optional[str] = None


# =============================================================================
# Embedding application
# =============================================================================


class SessionSnapshot(WireModel):
    """Session status for display by the embedding application.

    Example:
        {"state": "listening", "sessionId": "3f2a...", "history": [...]}
    """

    state: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    history: List[HistoryTurn] = Field(default_factory=list)
