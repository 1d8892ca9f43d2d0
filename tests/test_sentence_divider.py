"""Tests for the streaming sentence divider."""
import asyncio
from typing import AsyncIterator, List

import pytest

from voiceturn.cognition.sentence_divider import SentenceDivider, split_sentences


async def deltas_from(text: str, size: int = 3) -> AsyncIterator[str]:
    """Yield text in small pieces like a streamed reply."""
    for i in range(0, len(text), size):
        yield text[i:i + size]
        await asyncio.sleep(0)


async def collect(divider: SentenceDivider, text: str, size: int = 3) -> List:
    return [s async for s in divider.stream_sentences(deltas_from(text, size))]


class TestSentenceDivider:
    """Test SentenceDivider."""

    @pytest.mark.asyncio
    async def test_splits_on_sentence_end(self):
        divider = SentenceDivider(min_sentence_chars=5)

        sentences = await collect(divider, "Tell me more about it. What happened next? I am listening!")

        assert [s.text for s in sentences] == [
            "Tell me more about it.",
            "What happened next?",
            "I am listening!",
        ]
        assert [s.sequence_number for s in sentences] == [0, 1, 2]
        assert [s.is_final for s in sentences] == [False, False, True]

    @pytest.mark.asyncio
    async def test_short_sentences_are_merged(self):
        divider = SentenceDivider(min_sentence_chars=15)

        sentences = await collect(divider, "Oh. Wow. That sounds like a lovely memory. Yes.")

        assert [s.text for s in sentences] == [
            "Oh. Wow. That sounds like a lovely memory.",
            "Yes.",
        ]

    @pytest.mark.asyncio
    async def test_decimal_point_does_not_split(self):
        divider = SentenceDivider(min_sentence_chars=1)

        sentences = await collect(divider, "It costs 3.50 dollars today.")

        assert [s.text for s in sentences] == ["It costs 3.50 dollars today."]

    @pytest.mark.asyncio
    async def test_no_split_inside_quotes(self):
        divider = SentenceDivider(min_sentence_chars=1)

        sentences = await collect(divider, 'She said "Stop. Wait." and left. Then it rained.', size=4)

        assert [s.text for s in sentences] == [
            'She said "Stop. Wait." and left.',
            "Then it rained.",
        ]

    @pytest.mark.asyncio
    async def test_cjk_punctuation(self):
        divider = SentenceDivider(min_sentence_chars=1)

        sentences = await collect(divider, "你好。今天怎么样？")

        assert [s.text for s in sentences] == ["你好。", "今天怎么样？"]

    @pytest.mark.asyncio
    async def test_text_without_punctuation_is_flushed(self):
        divider = SentenceDivider()
        sentences = await collect(divider, "no punctuation at all")

        assert len(sentences) == 1
        assert sentences[0].is_final is True

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        divider = SentenceDivider()
        assert await collect(divider, "") == []

    @pytest.mark.asyncio
    async def test_split_sentences_yields_text(self):
        texts = [t async for t in split_sentences(deltas_from("First sentence here. Second one here."), 5)]
        assert texts == ["First sentence here.", "Second one here."]

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        async def failing():
            yield "Partial sentence. "
            raise RuntimeError("stream broke")

        divider = SentenceDivider(min_sentence_chars=1)
        with pytest.raises(RuntimeError, match="stream broke"):
            async for _ in divider.stream_sentences(failing()):
                pass
