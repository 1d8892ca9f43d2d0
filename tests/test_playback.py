"""Tests for the speech playback controller."""
import asyncio
from typing import AsyncIterator, List, Optional

import pytest

from voiceturn.cognition.playback import BaseAudioOutput, PlaybackController
from voiceturn.cognition.tts import BaseSynthesizer
from voiceturn.exceptions import PlaybackError, SynthesisError
from voiceturn.messages import Priority


class MockSynthesizer(BaseSynthesizer):
    """Mock synthesizer returning the text as audio bytes."""

    def __init__(self, delays: Optional[dict] = None, fail_on: Optional[set] = None):
        self.delays = delays or {}
        self.fail_on = fail_on or set()
        self.calls: List[tuple] = []

    async def synthesize(self, text, priority=None, voice=None) -> bytes:
        self.calls.append((text, priority, voice))
        await asyncio.sleep(self.delays.get(text, 0))
        if text in self.fail_on:
            raise SynthesisError(f"cannot synthesize {text}")
        return text.encode()


class MockOutput(BaseAudioOutput):
    """Mock output that records plays and concurrent playback."""

    def __init__(self, duration: float = 0.01, fail: bool = False):
        self.duration = duration
        self.fail = fail
        self.played: List[bytes] = []
        self.interrupted: List[bytes] = []
        self.active = 0
        self.max_active = 0
        self.opened = False
        self.closed = False
        self._stop = asyncio.Event()

    def open(self) -> None:
        self.opened = True

    async def play(self, audio: bytes) -> bool:
        if self.fail:
            raise PlaybackError("speaker unplugged")
        self._stop.clear()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.duration)
                self.interrupted.append(audio)
                return False
            except asyncio.TimeoutError:
                self.played.append(audio)
                return True
        finally:
            self.active -= 1

    def stop(self) -> None:
        self._stop.set()

    def close(self) -> None:
        self.closed = True
        self._stop.set()


async def texts_from(items: List[str], error: Optional[Exception] = None) -> AsyncIterator[str]:
    for item in items:
        yield item
        await asyncio.sleep(0)
    if error is not None:
        raise error


class TestPlay:
    """Test single playback."""

    @pytest.mark.asyncio
    async def test_play_to_end(self):
        output = MockOutput()
        controller = PlaybackController(MockSynthesizer(), output)

        assert await controller.play(b"audio") is True
        assert output.played == [b"audio"]
        assert controller.is_playing is False

    @pytest.mark.asyncio
    async def test_new_play_stops_previous(self):
        output = MockOutput(duration=1.0)
        controller = PlaybackController(MockSynthesizer(), output)

        first = asyncio.create_task(controller.play(b"first"))
        await asyncio.sleep(0.01)
        assert controller.is_playing is True

        output.duration = 0.01
        second = await controller.play(b"second")

        assert await first is False
        assert second is True
        assert output.interrupted == [b"first"]
        assert output.played == [b"second"]
        assert output.max_active == 1

    @pytest.mark.asyncio
    async def test_stop_interrupts(self):
        output = MockOutput(duration=1.0)
        controller = PlaybackController(MockSynthesizer(), output)

        task = asyncio.create_task(controller.play(b"long"))
        await asyncio.sleep(0.01)
        controller.stop()

        assert await task is False
        assert output.played == []

    @pytest.mark.asyncio
    async def test_playback_error_is_absorbed(self):
        controller = PlaybackController(MockSynthesizer(), MockOutput(fail=True))
        assert await controller.play(b"audio") is False

    @pytest.mark.asyncio
    async def test_playback_timeout(self):
        output = MockOutput(duration=1.0)
        controller = PlaybackController(MockSynthesizer(), output, max_playback_s=0.05)

        assert await controller.play(b"audio") is False
        assert output.played == []


class TestSpeak:
    """Test synthesize-then-play."""

    @pytest.mark.asyncio
    async def test_speak_forwards_priority_and_voice(self):
        synthesizer = MockSynthesizer()
        output = MockOutput()
        controller = PlaybackController(synthesizer, output, voice="alloy")

        assert await controller.speak("Hello", Priority.HIGH) is True
        assert synthesizer.calls == [("Hello", Priority.HIGH, "alloy")]
        assert output.played == [b"Hello"]

    @pytest.mark.asyncio
    async def test_speak_synthesis_failure(self):
        output = MockOutput()
        controller = PlaybackController(MockSynthesizer(fail_on={"Hello"}), output)

        assert await controller.speak("Hello") is False
        assert output.played == []

    @pytest.mark.asyncio
    async def test_stop_during_synthesis(self):
        output = MockOutput()
        controller = PlaybackController(MockSynthesizer(delays={"Hello": 1.0}), output)

        task = asyncio.create_task(controller.speak("Hello"))
        await asyncio.sleep(0.01)
        controller.stop()

        assert await task is False
        assert output.played == []


class TestSpeakStream:
    """Test ordered playback of streamed sentences."""

    @pytest.mark.asyncio
    async def test_plays_in_order_despite_synthesis_timing(self):
        # First sentence synthesizes slowest
        synthesizer = MockSynthesizer(delays={"one": 0.05, "two": 0.0, "three": 0.01})
        output = MockOutput(duration=0.005)
        controller = PlaybackController(synthesizer, output, max_concurrent_synthesis=3)

        result = await controller.speak_stream(texts_from(["one", "two", "three"]))

        assert result is True
        assert output.played == [b"one", b"two", b"three"]
        assert output.max_active == 1

    @pytest.mark.asyncio
    async def test_failed_sentence_is_skipped(self):
        output = MockOutput()
        controller = PlaybackController(MockSynthesizer(fail_on={"two"}), output)

        result = await controller.speak_stream(texts_from(["one", "two", "three"]))

        assert result is False
        assert output.played == [b"one", b"three"]

    @pytest.mark.asyncio
    async def test_source_error_propagates(self):
        output = MockOutput()
        controller = PlaybackController(MockSynthesizer(), output)

        with pytest.raises(SynthesisError, match="reply failed"):
            await controller.speak_stream(texts_from(["one"], error=SynthesisError("reply failed")))

        assert output.played == [b"one"]

    @pytest.mark.asyncio
    async def test_stop_ends_stream(self):
        output = MockOutput(duration=1.0)
        synthesizer = MockSynthesizer()
        controller = PlaybackController(synthesizer, output)

        task = asyncio.create_task(controller.speak_stream(texts_from(["one", "two", "three"])))
        await asyncio.sleep(0.05)
        controller.stop()

        assert await task is False
        assert output.played == []
        assert output.interrupted == [b"one"]

    @pytest.mark.asyncio
    async def test_blank_sentences_ignored(self):
        synthesizer = MockSynthesizer()
        controller = PlaybackController(synthesizer, MockOutput())

        await controller.speak_stream(texts_from(["", "   ", "real"]))

        assert [c[0] for c in synthesizer.calls] == ["real"]
