"""Transcription client for the speech-to-text endpoint."""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import aiohttp
from pydantic import ValidationError

from ..config import Config, get_config
from ..logging_config import setup_logger
from ..messages import TranscriptionReply

logger = setup_logger("voiceturn.transcription")


@dataclass
class TranscriptionResult:
    """Transcription result: either text or no speech."""
    text: str = ""
    no_speech_detected: bool = False
    reason: Optional[str] = None

    @classmethod
    def no_speech(cls, reason: str) -> "TranscriptionResult":
        return cls(text="", no_speech_detected=True, reason=reason)


class BaseTranscriber(ABC):
    """Base class for transcription clients.

    ``transcribe`` never raises for endpoint failures: anything that is not
    a usable transcript is reported as no speech.
    """

    @abstractmethod
    async def transcribe(self, wav: bytes) -> TranscriptionResult:
        """Transcribe a WAV-encoded utterance."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass


class HttpTranscriber(BaseTranscriber):
    """Posts WAV audio as multipart form data to a transcription endpoint."""

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout_s: float = 30.0,
        min_chars: int = 2,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.min_chars = min_chars
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_s)
            )
        return self._session

    def _headers(self) -> dict:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    async def transcribe(self, wav: bytes) -> TranscriptionResult:
        if not wav:
            return TranscriptionResult.no_speech("No audio data")

        form = aiohttp.FormData()
        form.add_field("audio", wav, filename="stream.wav", content_type="audio/wav")

        try:
            session = await self._get_session()
            async with session.post(self.url, data=form, headers=self._headers()) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Transcription API error: {response.status} - {error_text[:200]}")
                    return TranscriptionResult.no_speech(f"HTTP {response.status}")

                payload = await response.json(content_type=None)
                reply = TranscriptionReply.model_validate(payload)

        except asyncio.TimeoutError:
            logger.error("Transcription request timeout")
            return TranscriptionResult.no_speech("Timeout")
        except (aiohttp.ClientError, ValueError, ValidationError) as e:
            logger.error(f"Transcription error: {e}")
            return TranscriptionResult.no_speech(str(e))

        text = (reply.transcription or "").strip()
        if not reply.success or len(text) < self.min_chars:
            reason = reply.reason or reply.error or "No speech detected"
            logger.debug(f"No speech: {reason}")
            return TranscriptionResult.no_speech(reason)

        logger.info(f"Transcribed: {text[:80]}")
        return TranscriptionResult(text=text)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


def create_transcriber(config: Optional[Config] = None) -> HttpTranscriber:
    """Factory function to create the configured transcriber."""
    cfg = config or get_config()
    return HttpTranscriber(
        url=cfg.endpoints.transcription_url,
        api_key=cfg.api.api_key,
        timeout_s=cfg.endpoints.request_timeout_s,
        min_chars=cfg.turn.min_transcript_chars,
    )
