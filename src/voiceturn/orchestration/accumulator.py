"""Turn Aggregator for the orchestration layer."""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ..logging_config import setup_logger

logger = setup_logger("voiceturn.accumulator")


@dataclass
class TranscriptFragment:
    """A transcript fragment of the current turn, in capture order."""
    slot: int
    text: Optional[str] = None
    filled: bool = False
    timestamp: Optional[datetime] = None


class TurnAggregator:
    """Accumulates transcript fragments into one user utterance.

    Every audio segment sent for transcription reserves a slot before the
    request goes out. Results fill their slot whenever they arrive, so the
    combined text always follows capture order even when requests resolve
    out of order.
    """

    def __init__(self, early_dispatch_chars: int = 20):
        self.early_dispatch_chars = early_dispatch_chars
        self._fragments: List[TranscriptFragment] = []
        self._next_slot = 0

    def reserve(self) -> int:
        """Reserve a slot for a transcription that is about to be requested."""
        slot = self._next_slot
        self._next_slot += 1
        self._fragments.append(TranscriptFragment(slot=slot))
        return slot

    def fill(self, slot: int, text: Optional[str]) -> None:
        """Fill a reserved slot. ``None`` marks a rejected fragment."""
        for fragment in self._fragments:
            if fragment.slot == slot:
                fragment.text = text.strip() if text else None
                fragment.filled = True
                fragment.timestamp = datetime.now()
                if fragment.text:
                    logger.info(f"Fragment {slot}: {fragment.text[:50]} (total: {self.count()})")
                return
        # Slot was cleared by take()/clear() in the meantime
        logger.debug(f"Dropping fragment for released slot {slot}")

    @property
    def pending(self) -> int:
        """Number of reserved slots still waiting for a result."""
        return sum(1 for f in self._fragments if not f.filled)

    def get_combined_text(self) -> str:
        """Get combined text of the filled fragments without clearing."""
        return " ".join(f.text for f in self._fragments if f.filled and f.text)

    def should_dispatch_early(self) -> bool:
        """Whether the text so far is long enough to count as a complete thought."""
        if self.pending:
            return False
        return len(self.get_combined_text()) > self.early_dispatch_chars

    def take(self) -> str:
        """Atomically capture the combined text and clear the aggregator."""
        text = self.get_combined_text()
        if text:
            logger.info(f"Taking {self.count()} fragments: {text[:100]}")
        self._fragments = []
        return text

    def count(self) -> int:
        """Number of filled, non-empty fragments."""
        return sum(1 for f in self._fragments if f.filled and f.text)

    def is_empty(self) -> bool:
        return not self._fragments

    def clear(self) -> None:
        self._fragments = []

    def __len__(self) -> int:
        return self.count()

    def __bool__(self) -> bool:
        return not self.is_empty()
