"""Streaming sentence divider for replies.

Turns a stream of text deltas into a stream of sentences so that speech
synthesis of the first sentence can start before the reply is complete.
"""
import asyncio
import re
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from ..logging_config import setup_logger

logger = setup_logger("voiceturn.sentence_divider")

# End of sentence punctuation followed by whitespace (or CJK punctuation)
SENTENCE_DELIMITERS = r"(?<=[.!?])\s+|(?<=[。！？])"

_QUOTE_PAIRS = (
    ('"', '"'),
    ("“", "”"),
    ("(", ")"),
    ("「", "」"),
)


@dataclass
class Sentence:
    """A sentence ready for synthesis."""
    sequence_number: int
    text: str
    is_final: bool = False


class SentenceDivider:
    """Streams reply deltas and yields complete sentences.

    Sentences shorter than ``min_sentence_chars`` are held back and merged
    with the following one so that synthesis requests are not wasted on
    fragments like "Oh." Splitting is suppressed inside unclosed quotes.
    """

    def __init__(self, min_sentence_chars: int = 15):
        self.min_sentence_chars = min_sentence_chars
        self._pattern = re.compile(SENTENCE_DELIMITERS)
        self._buffer = ""
        self._pending = ""
        self._sequence_number = 0

    async def stream_sentences(self, deltas: AsyncIterator[str]) -> AsyncIterator[Sentence]:
        """Transform a delta stream into a sentence stream."""
        self._buffer = ""
        self._pending = ""
        self._sequence_number = 0

        try:
            async for delta in deltas:
                if not delta:
                    continue
                self._buffer += delta
                for sentence in self._extract_sentences():
                    yield sentence

            remainder = self._join(self._pending, self._buffer.strip())
            self._buffer = ""
            self._pending = ""
            if remainder:
                yield self._create_sentence(remainder, is_final=True)

        except asyncio.CancelledError:
            logger.debug("SentenceDivider stream cancelled")
            raise

    def _extract_sentences(self):
        while True:
            boundary = self._find_boundary()
            if boundary is None:
                return

            end_pos, next_pos = boundary
            candidate = self._buffer[:end_pos]
            self._buffer = self._buffer[next_pos:]
            text = self._join(self._pending, candidate.strip())
            if not text:
                continue
            if len(text) < self.min_sentence_chars:
                self._pending = text
                continue

            self._pending = ""
            yield self._create_sentence(text, is_final=False)

    def _find_boundary(self) -> Optional[tuple]:
        """First delimiter in the buffer that is not inside quotes."""
        for match in self._pattern.finditer(self._buffer):
            # Delimiter whitespace belongs to neither sentence
            end_pos = match.start()
            if not self._is_inside_quotes(self._buffer[:end_pos]):
                return end_pos, match.end()
        return None

    @staticmethod
    def _join(first: str, second: str) -> str:
        if first and second:
            return f"{first} {second}"
        return first or second

    @staticmethod
    def _is_inside_quotes(text: str) -> bool:
        """Check if text ends inside unclosed quotes."""
        for open_q, close_q in _QUOTE_PAIRS:
            if open_q == close_q:
                if text.count(open_q) % 2 == 1:
                    return True
            elif text.rfind(open_q) > text.rfind(close_q):
                return True
        return False

    def _create_sentence(self, text: str, is_final: bool) -> Sentence:
        sentence = Sentence(
            sequence_number=self._sequence_number,
            text=text,
            is_final=is_final,
        )
        self._sequence_number += 1
        logger.debug(f"Sentence {sentence.sequence_number}: {text[:40]}")
        return sentence


async def split_sentences(
    deltas: AsyncIterator[str],
    min_sentence_chars: int = 15,
    divider: Optional[SentenceDivider] = None,
) -> AsyncIterator[str]:
    """Yield sentence texts only."""
    divider = divider or SentenceDivider(min_sentence_chars=min_sentence_chars)
    async for sentence in divider.stream_sentences(deltas):
        yield sentence.text
