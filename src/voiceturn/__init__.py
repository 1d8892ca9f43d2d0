"""voiceturn - Turn-taking engine for real-time voice conversations.

Architecture:
- perception: capture, chunking, VAD, transcription
- orchestration: FSM, silence detection, hallucination filter, aggregation
- cognition: history, response generation, synthesis, playback
- core: conversation session
"""
from .config import Config, get_config
from .core import ConversationSession, create_session
from .exceptions import (
    APIError,
    DeviceError,
    PlaybackError,
    ResponseError,
    SessionError,
    SynthesisError,
    TranscriptionError,
    VoiceTurnError,
)
from .logging_config import logger, set_log_level, setup_logger
from .orchestration.fsm import State

__version__ = "1.0.0"

__all__ = [
    # Config
    "Config",
    "get_config",
    # Logging
    "logger",
    "setup_logger",
    "set_log_level",
    # Core
    "ConversationSession",
    "create_session",
    "State",
    # Exceptions
    "VoiceTurnError",
    "APIError",
    "DeviceError",
    "PlaybackError",
    "ResponseError",
    "SessionError",
    "SynthesisError",
    "TranscriptionError",
]
