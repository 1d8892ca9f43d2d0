"""Text-to-Speech (TTS) client for the speech synthesis endpoint."""
import asyncio
import base64
import binascii
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from ..config import Config, get_config
from ..exceptions import SynthesisError
from ..logging_config import setup_logger
from ..messages import Priority, SynthesisRequest

logger = setup_logger("voiceturn.tts")


class BaseSynthesizer(ABC):
    """Base class for speech synthesizers."""

    @abstractmethod
    async def synthesize(
        self,
        text: str,
        priority: Optional[Priority] = None,
        voice: Optional[str] = None,
    ) -> bytes:
        """Synthesize speech from text and return encoded audio.

        Raises:
            SynthesisError: If no audio could be produced.
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass


class HttpSynthesizer(BaseSynthesizer):
    """JSON client for the speech synthesis endpoint.

    The endpoint answers either with raw audio bytes or with JSON carrying
    base64 audio under ``audio``.
    """

    def __init__(self, url: str, api_key: str = "", timeout_s: float = 30.0):
        self.url = url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_s)
            )
        return self._session

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def synthesize(
        self,
        text: str,
        priority: Optional[Priority] = None,
        voice: Optional[str] = None,
    ) -> bytes:
        text = text.strip()
        if not text:
            raise SynthesisError("Nothing to synthesize")

        payload = SynthesisRequest(text=text, priority=priority, voice=voice).to_dict()

        try:
            session = await self._get_session()
            async with session.post(self.url, json=payload, headers=self._headers()) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"TTS API error: {response.status} - {error_text[:200]}")
                    raise SynthesisError(f"TTS API error: {response.status}")

                if response.content_type == "application/json":
                    result = await response.json()
                    audio = self._decode_json_audio(result)
                else:
                    audio = await response.read()

        except SynthesisError:
            raise
        except asyncio.TimeoutError:
            logger.error("TTS request timeout")
            raise SynthesisError("TTS request timeout")
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"TTS synthesis error: {e}")
            raise SynthesisError(f"TTS synthesis failed: {e}")

        if not audio:
            raise SynthesisError("No audio in TTS response")

        logger.debug(f"Synthesized {len(audio)} bytes for: {text[:40]}")
        return audio

    @staticmethod
    def _decode_json_audio(result) -> bytes:
        if not isinstance(result, dict) or not result.get("audio"):
            raise SynthesisError(f"No audio in TTS response: {str(result)[:200]}")
        try:
            return base64.b64decode(result["audio"])
        except (binascii.Error, TypeError) as e:
            raise SynthesisError(f"Invalid audio encoding: {e}")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


def create_synthesizer(config: Optional[Config] = None) -> HttpSynthesizer:
    """Factory function to create the configured synthesizer."""
    cfg = config or get_config()
    return HttpSynthesizer(
        url=cfg.endpoints.synthesis_url,
        api_key=cfg.api.api_key,
        timeout_s=cfg.endpoints.request_timeout_s,
    )
