"""Voice Activity Detection (VAD) module."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import Config, get_config
from ..logging_config import setup_logger

logger = setup_logger("voiceturn.vad")


@dataclass
class VADResult:
    """VAD detection result."""
    is_speech: bool
    peak: float


class BaseVAD(ABC):
    """Base class for VAD implementations.

    Detection is synchronous: it runs on every chunk inside the intake path,
    which must never await.
    """

    @abstractmethod
    def detect(self, samples: np.ndarray) -> VADResult:
        """Classify a window of samples as speech or silence."""
        pass


class EnergyVAD(BaseVAD):
    """Peak-amplitude VAD.

    A window is speech when any sample's absolute value exceeds the
    threshold. Cheap enough to run per chunk and deterministic for tests.
    """

    def __init__(self, threshold: float = 0.01):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"VAD threshold must be in [0, 1], got {threshold}")
        self.threshold = threshold

    def detect(self, samples: np.ndarray) -> VADResult:
        if samples is None or len(samples) == 0:
            return VADResult(is_speech=False, peak=0.0)

        peak = float(np.max(np.abs(samples)))
        return VADResult(is_speech=peak > self.threshold, peak=peak)


def create_vad(config: Optional[Config] = None) -> BaseVAD:
    """Factory function to create the configured VAD."""
    cfg = config or get_config()
    threshold = cfg.vad.silence_threshold
    logger.debug(f"Creating energy VAD with threshold {threshold}")
    return EnergyVAD(threshold=threshold)
