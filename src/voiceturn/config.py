"""Configuration management for voiceturn."""
import os
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiConfig(BaseModel):
    """API configuration."""
    api_key: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class CaptureConfig(BaseModel):
    """Microphone capture and chunking configuration."""
    sample_rate: int = 16000
    block_size: int = 4096
    chunk_duration_ms: int = Field(default=1500, gt=0)
    device: Optional[str] = None


class VADConfig(BaseModel):
    """VAD configuration."""
    silence_threshold: float = Field(default=0.01, ge=0.0, le=1.0)


class TurnConfig(BaseModel):
    """Turn-taking configuration."""
    silence_timeout_ms: int = 1500
    min_audio_ms: int = 500
    max_segment_ms: int = 15000
    min_transcript_chars: int = 2
    enable_early_dispatch: bool = True
    early_dispatch_chars: int = 20
    # None selects the built-in denylist
    hallucinations: Optional[List[str]] = None


class PlaybackConfig(BaseModel):
    """Speech playback configuration."""
    rearm_delay_ms: int = 500
    sample_rate: int = 24000
    max_playback_s: float = 120.0
    max_concurrent_synthesis: int = 2
    min_sentence_chars: int = 15
    device: Optional[str] = None


class EndpointConfig(BaseModel):
    """Collaborator endpoint configuration."""
    transcription_url: str = "http://localhost:3000/api/ai/whisper-streaming"
    response_url: str = "http://localhost:3000/api/ai/memory-assistant-test"
    response_stream_url: str = "http://localhost:3000/api/ai/gpt4o-streaming"
    synthesis_url: str = "http://localhost:3000/api/ai/tts-streaming"
    stream_responses: bool = False
    request_timeout_s: float = 30.0


class SessionConfig(BaseModel):
    """Conversation session configuration."""
    greeting: Optional[str] = (
        "Hi! I'm your memory assistant. I'm ready to have a conversation "
        "about your memories. What would you like to share today?"
    )
    history_window: int = 10
    voice: Optional[str] = None


class Config(BaseSettings):
    """Main configuration."""
    model_config = SettingsConfigDict(
        env_prefix="VOICETURN_",
        env_nested_delimiter="__",
    )

    api: ApiConfig = Field(default_factory=ApiConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    vad: VADConfig = Field(default_factory=VADConfig)
    turn: TurnConfig = Field(default_factory=TurnConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    endpoints: EndpointConfig = Field(default_factory=EndpointConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, env_path: Optional[Path] = None) -> "Config":
        """Load configuration from environment variables."""
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        return cls(
            api=ApiConfig(
                api_key=os.getenv("VOICETURN_API_KEY", ""),
            )
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config
