"""Audio chunking and encoding helpers."""
import io
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import soundfile as sf

from ..logging_config import setup_logger
from .vad import BaseVAD, EnergyVAD

logger = setup_logger("voiceturn.audio")


@dataclass
class AudioChunk:
    """A fixed-duration window of captured audio, classified by the VAD."""
    samples: np.ndarray
    has_energy: bool
    sample_rate: int = 16000
    sequence: int = 0

    @property
    def duration_ms(self) -> int:
        if self.sample_rate <= 0:
            return 0
        return int(round(len(self.samples) * 1000 / self.sample_rate))


class Chunker:
    """Slices a continuous sample stream into fixed-duration chunks.

    Capture devices deliver blocks of arbitrary size; the chunker buffers
    them and emits one ``AudioChunk`` per complete window. Each chunk is
    classified immediately.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_duration_ms: int = 1500,
        vad: BaseVAD = None,
    ):
        if chunk_duration_ms <= 0:
            raise ValueError("chunk_duration_ms must be positive")
        self.sample_rate = sample_rate
        self.chunk_duration_ms = chunk_duration_ms
        self.chunk_samples = max(1, int(sample_rate * chunk_duration_ms / 1000))
        self.vad = vad or EnergyVAD()

        self._buffer = np.zeros(0, dtype=np.float32)
        self._sequence = 0

    def push(self, samples: np.ndarray) -> List[AudioChunk]:
        """Add captured samples; return every chunk completed by them."""
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if samples.size:
            self._buffer = np.concatenate([self._buffer, samples])

        chunks = []
        while len(self._buffer) >= self.chunk_samples:
            window = self._buffer[:self.chunk_samples].copy()
            self._buffer = self._buffer[self.chunk_samples:]
            result = self.vad.detect(window)
            chunks.append(AudioChunk(
                samples=window,
                has_energy=result.is_speech,
                sample_rate=self.sample_rate,
                sequence=self._sequence,
            ))
            self._sequence += 1
        return chunks

    @property
    def buffered_samples(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        """Drop any partial window."""
        if len(self._buffer):
            logger.debug(f"Dropping {len(self._buffer)} buffered samples")
        self._buffer = np.zeros(0, dtype=np.float32)


def concat_chunks(chunks: Sequence[AudioChunk]) -> np.ndarray:
    """Join chunk samples in order."""
    if not chunks:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate([c.samples for c in chunks]).astype(np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int = 16000) -> bytes:
    """Encode float samples as a 16-bit PCM mono WAV file."""
    data = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    buffer = io.BytesIO()
    sf.write(buffer, data, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()
