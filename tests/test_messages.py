"""Tests for the voiceturn wire models."""
import json

import pytest
from pydantic import ValidationError

from voiceturn.messages import (
    HistoryTurn,
    Priority,
    ResponseReply,
    ResponseRequest,
    Role,
    SessionSnapshot,
    StreamDelta,
    SynthesisRequest,
    TranscriptionReply,
)


class TestResponseRequest:
    """Tests for ResponseRequest."""

    def test_camel_case_serialization(self):
        msg = ResponseRequest(
            message="I want to save a memory",
            session_id="abc123",
            conversation_history=[HistoryTurn(role=Role.ASSISTANT, text="Hi!", timestamp=1)],
        )

        data = msg.to_dict()

        assert data["message"] == "I want to save a memory"
        assert data["sessionId"] == "abc123"
        assert data["conversationHistory"] == [{"role": "assistant", "text": "Hi!", "timestamp": 1}]

    def test_populate_by_alias(self):
        msg = ResponseRequest.model_validate({"message": "Hello", "sessionId": "s1"})
        assert msg.session_id == "s1"
        assert msg.conversation_history == []

    def test_empty_message_rejected(self):
        with pytest.raises(ValidationError, match="String should have at least 1 character"):
            ResponseRequest(message="")

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ResponseRequest(message="Hello", extra_field=1)

    def test_to_json(self):
        msg = ResponseRequest(message="Hello", session_id="s1")
        data = json.loads(msg.to_json())
        assert data == {"message": "Hello", "sessionId": "s1", "conversationHistory": []}


class TestReplies:
    """Tests for endpoint replies."""

    def test_transcription_reply_defaults(self):
        reply = TranscriptionReply.model_validate({"reason": "Audio too short or silent"})

        assert reply.success is False
        assert reply.transcription is None
        assert reply.reason == "Audio too short or silent"

    def test_response_reply_priority(self):
        reply = ResponseReply.model_validate({"success": True, "response": "Hi", "priority": "high"})
        assert reply.priority == Priority.HIGH.value

    def test_response_reply_invalid_priority(self):
        with pytest.raises(ValidationError):
            ResponseReply.model_validate({"response": "Hi", "priority": "urgent"})

    def test_extra_fields_ignored(self):
        reply = ResponseReply.model_validate({"response": "Hi", "memoryId": 42, "conversationId": "c"})
        assert reply.response == "Hi"

    def test_stream_delta(self):
        assert StreamDelta.model_validate({"content": "Tell"}).content == "Tell"
        assert StreamDelta.model_validate({"done": True}).done is True


class TestSynthesisRequest:
    """Tests for SynthesisRequest."""

    def test_optional_fields_omitted(self):
        assert SynthesisRequest(text="Hello").to_dict() == {"text": "Hello"}

    def test_priority_serialized_as_value(self):
        data = SynthesisRequest(text="Hello", priority=Priority.LOW, voice="alloy").to_dict()
        assert data == {"text": "Hello", "priority": "low", "voice": "alloy"}


class TestSessionSnapshot:
    """Tests for SessionSnapshot."""

    def test_serialization(self):
        snap = SessionSnapshot(
            state="listening",
            session_id="s1",
            history=[HistoryTurn(role=Role.USER, text="Hello")],
        )

        data = snap.to_dict()

        assert data["state"] == "listening"
        assert data["sessionId"] == "s1"
        assert data["history"] == [{"role": "user", "text": "Hello"}]

    def test_negative_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            HistoryTurn(role=Role.USER, text="x", timestamp=-1)
