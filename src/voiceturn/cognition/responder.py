"""Response generation client."""
import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import aiohttp
from pydantic import ValidationError

from ..config import Config, get_config
from ..exceptions import ResponseError
from ..logging_config import setup_logger
from ..messages import HistoryTurn, Priority, ResponseReply, ResponseRequest, StreamDelta

logger = setup_logger("voiceturn.responder")


@dataclass
class ResponseResult:
    """A complete reply from the response endpoint."""
    text: str
    priority: Optional[Priority] = None
    session_id: Optional[str] = None


class BaseResponder(ABC):
    """Base class for response generators."""

    @abstractmethod
    async def respond(
        self,
        message: str,
        session_id: str,
        history: List[HistoryTurn],
    ) -> ResponseResult:
        """Generate a complete reply.

        Raises:
            ResponseError: On endpoint failure or an empty reply.
        """
        pass

    async def stream(
        self,
        message: str,
        session_id: str,
        history: List[HistoryTurn],
    ) -> AsyncIterator[str]:
        """Yield reply text deltas. Defaults to one delta with the full reply."""
        result = await self.respond(message, session_id, history)
        yield result.text

    async def close(self) -> None:
        """Release network resources."""
        pass


class HttpResponder(BaseResponder):
    """JSON client for the response generation endpoint.

    ``respond`` posts to ``url`` and expects ``{success, response,
    priority?}``. ``stream`` posts to ``stream_url`` and reads server-sent
    ``data:`` lines until ``[DONE]`` or ``{"done": true}``.
    """

    def __init__(
        self,
        url: str,
        stream_url: Optional[str] = None,
        api_key: str = "",
        timeout_s: float = 30.0,
    ):
        self.url = url
        self.stream_url = stream_url or url
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

    def _build_request(
        self,
        message: str,
        session_id: str,
        history: List[HistoryTurn],
    ) -> ResponseRequest:
        return ResponseRequest(
            message=message,
            session_id=session_id,
            conversation_history=history,
        )

    async def respond(
        self,
        message: str,
        session_id: str,
        history: List[HistoryTurn],
    ) -> ResponseResult:
        payload = self._build_request(message, session_id, history).to_dict()

        try:
            session = await self._get_session()
            async with session.post(self.url, json=payload, headers=self._headers()) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Response API error: {response.status} - {error_text[:200]}")
                    raise ResponseError(f"Response API error: {response.status}")

                reply = ResponseReply.model_validate(await response.json(content_type=None))

        except ResponseError:
            raise
        except asyncio.TimeoutError:
            logger.error("Response request timeout")
            raise ResponseError("Response request timeout")
        except (aiohttp.ClientError, ValueError, ValidationError) as e:
            logger.error(f"Response request error: {e}")
            raise ResponseError(f"Response request failed: {e}")

        if not reply.success:
            raise ResponseError(reply.error or "Response endpoint reported failure")

        text = (reply.response or "").strip()
        if not text:
            raise ResponseError("Empty response")

        priority = Priority(reply.priority) if reply.priority else None
        return ResponseResult(text=text, priority=priority, session_id=reply.session_id)

    async def stream(
        self,
        message: str,
        session_id: str,
        history: List[HistoryTurn],
    ) -> AsyncIterator[str]:
        payload = self._build_request(message, session_id, history).to_dict()
        received = False

        try:
            session = await self._get_session()
            async with session.post(self.stream_url, json=payload, headers=self._headers()) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Response stream error: {response.status} - {error_text[:200]}")
                    raise ResponseError(f"Response stream error: {response.status}")

                async for line in response.content:
                    line = line.decode().strip()
                    if not line or not line.startswith("data: "):
                        continue

                    data_str = line[6:]
                    if data_str == "[DONE]":
                        break

                    try:
                        delta = StreamDelta.model_validate(json.loads(data_str))
                    except (json.JSONDecodeError, ValidationError):
                        logger.debug(f"Skipping malformed stream line: {data_str[:80]}")
                        continue

                    if delta.content:
                        received = True
                        yield delta.content
                    if delta.done:
                        break

        except ResponseError:
            raise
        except asyncio.TimeoutError:
            logger.error("Response stream timeout")
            raise ResponseError("Response stream timeout")
        except (aiohttp.ClientError, UnicodeDecodeError) as e:
            logger.error(f"Response stream error: {e}")
            raise ResponseError(f"Response stream failed: {e}")

        if not received:
            raise ResponseError("Empty response")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()


def create_responder(config: Optional[Config] = None) -> HttpResponder:
    """Factory function to create the configured response client."""
    cfg = config or get_config()
    return HttpResponder(
        url=cfg.endpoints.response_url,
        stream_url=cfg.endpoints.response_stream_url,
        api_key=cfg.api.api_key,
        timeout_s=cfg.endpoints.request_timeout_s,
    )
