"""Silence / end-of-turn detection driven by chunk arrival."""
import math

from ..logging_config import setup_logger

logger = setup_logger("voiceturn.silence")


class SilenceDetector:
    """Counts consecutive silent chunks since the last detected speech.

    The detector is deterministic: it never reads a clock. Time is derived
    from the number of chunks seen and the fixed chunk duration, so the same
    chunk sequence always produces the same turn boundaries.
    """

    def __init__(self, chunk_duration_ms: int = 1500, silence_timeout_ms: int = 1500):
        if chunk_duration_ms <= 0:
            raise ValueError("chunk_duration_ms must be positive")
        self.chunk_duration_ms = chunk_duration_ms
        self.silence_timeout_ms = silence_timeout_ms
        self.required_silent_chunks = max(1, math.ceil(silence_timeout_ms / chunk_duration_ms))

        self._silent_chunks = 0
        self._speech_since_boundary = False
        self._chunks_since_speech = 0
        self._has_heard_speech = False

    def update(self, is_speech: bool) -> bool:
        """Record one chunk. Returns True when a turn boundary is reached.

        A boundary fires once per turn: only when speech has been seen since
        the previous boundary.
        """
        if is_speech:
            self._silent_chunks = 0
            self._chunks_since_speech = 0
            self._speech_since_boundary = True
            self._has_heard_speech = True
            return False

        self._silent_chunks += 1
        self._chunks_since_speech += 1

        if self._speech_since_boundary and self._silent_chunks >= self.required_silent_chunks:
            self._speech_since_boundary = False
            logger.debug(
                f"Turn boundary after {self._silent_chunks} silent chunks "
                f"({self.time_since_last_speech_ms}ms)"
            )
            return True
        return False

    @property
    def consecutive_silent_chunks(self) -> int:
        return self._silent_chunks

    @property
    def time_since_last_speech_ms(self) -> int:
        """Silence duration since the last speech chunk, or 0 if none yet."""
        if not self._has_heard_speech:
            return 0
        return self._chunks_since_speech * self.chunk_duration_ms

    @property
    def in_speech(self) -> bool:
        """Whether speech has been seen since the last boundary."""
        return self._speech_since_boundary

    def reset(self) -> None:
        self._silent_chunks = 0
        self._speech_since_boundary = False
        self._chunks_since_speech = 0
        self._has_heard_speech = False
