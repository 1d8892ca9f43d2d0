"""Filter for transcripts produced by speech-to-text on non-speech audio."""
from typing import Iterable, Optional

from ..logging_config import setup_logger

logger = setup_logger("voiceturn.hallucination")

DEFAULT_HALLUCINATIONS = (
    "thank you",
    "thanks",
    "you",
    "bye",
    "okay",
    "mm-hmm",
    "uh-huh",
    "hmm",
    "um",
    "uh",
    "ah",
    "...",
    "silence",
    "background",
)

_TRAILING_PUNCTUATION = ".,!?;:…"


def normalize(text: str) -> str:
    """Trim and lowercase for comparison."""
    return " ".join(text.strip().lower().split())


class HallucinationFilter:
    """Rejects low-information transcripts by exact denylist match.

    Comparison is case-insensitive, ignores surrounding whitespace and
    trailing punctuation. A phrase made only of punctuation (such as "...")
    is matched as written.
    """

    def __init__(self, phrases: Optional[Iterable[str]] = None):
        source = DEFAULT_HALLUCINATIONS if phrases is None else phrases
        self._phrases = frozenset(normalize(p) for p in source if p.strip())

    @property
    def phrases(self) -> frozenset:
        return self._phrases

    def is_hallucination(self, text: str) -> bool:
        normalized = normalize(text)
        if not normalized:
            return False
        if normalized in self._phrases:
            return True
        stripped = normalized.rstrip(_TRAILING_PUNCTUATION).rstrip()
        return bool(stripped) and stripped in self._phrases

    def accept(self, text: str) -> Optional[str]:
        """Return the trimmed text, or None if it is a known artifact."""
        if self.is_hallucination(text):
            logger.info(f"Filtered likely hallucination: {text!r}")
            return None
        return text.strip()
