"""Speech playback: audio output devices and the playback controller."""
import asyncio
import io
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Set

import numpy as np
import soundfile as sf

from ..exceptions import DeviceError, PlaybackError
from ..logging_config import setup_logger
from ..messages import Priority
from .tts import BaseSynthesizer

logger = setup_logger("voiceturn.playback")


class BaseAudioOutput(ABC):
    """Base class for audio output devices."""

    @abstractmethod
    def open(self) -> None:
        """Acquire the output device.

        Raises:
            DeviceError: If the device cannot be opened.
        """
        pass

    @abstractmethod
    async def play(self, audio: bytes) -> bool:
        """Play encoded audio to completion.

        Returns True if playback reached the end, False if it was stopped.

        Raises:
            PlaybackError: If the audio cannot be decoded or written.
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Interrupt the current ``play`` as soon as possible."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the output device. Safe to call more than once."""
        pass


class SoundDeviceOutput(BaseAudioOutput):
    """Plays audio through a sounddevice output stream.

    Audio is decoded with soundfile, resampled to the stream rate and
    written in small blocks; the stop flag is checked between blocks.
    """

    def __init__(
        self,
        sample_rate: int = 24000,
        block_ms: int = 100,
        device: Optional[str] = None,
    ):
        self.sample_rate = sample_rate
        self.block_size = max(1, sample_rate * block_ms // 1000)
        self.device = device
        self._stream = None
        self._stop_requested = False

    def open(self) -> None:
        import sounddevice as sd

        if self._stream is not None:
            return
        try:
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype=np.float32,
                blocksize=self.block_size,
                device=self.device,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._stream = None
            raise DeviceError(f"Cannot open speaker: {e}") from e
        logger.info(f"Speaker opened: {self.sample_rate}Hz")

    def _decode(self, audio: bytes) -> np.ndarray:
        try:
            audio_array, sample_rate = sf.read(io.BytesIO(audio), dtype="float32")
        except (RuntimeError, TypeError) as e:
            raise PlaybackError(f"Cannot decode audio: {e}") from e

        if len(audio_array.shape) > 1:
            audio_array = audio_array[:, 0]  # Take first channel

        if sample_rate != self.sample_rate and len(audio_array):
            num_samples = int(len(audio_array) * self.sample_rate / sample_rate)
            indices = np.linspace(0, len(audio_array) - 1, num_samples)
            audio_array = np.interp(indices, np.arange(len(audio_array)), audio_array)

        return audio_array.astype(np.float32)

    async def play(self, audio: bytes) -> bool:
        if self._stream is None:
            raise PlaybackError("Speaker is not open")

        self._stop_requested = False
        audio_array = self._decode(audio)
        loop = asyncio.get_running_loop()

        for i in range(0, len(audio_array), self.block_size):
            if self._stop_requested or self._stream is None:
                return False
            chunk = audio_array[i:i + self.block_size]
            if len(chunk) < self.block_size:
                chunk = np.pad(chunk, (0, self.block_size - len(chunk)))
            try:
                await loop.run_in_executor(None, self._stream.write, chunk)
            except Exception as e:
                raise PlaybackError(f"Speaker write failed: {e}") from e

        return not self._stop_requested

    def stop(self) -> None:
        self._stop_requested = True

    def close(self) -> None:
        self._stop_requested = True
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing speaker: {e}")
        logger.info("Speaker closed")


class PlaybackHandle:
    """Handle to one playback. Closing it stops that playback only."""

    def __init__(self, output: BaseAudioOutput):
        self._output = output
        self.closed = False
        self.done = False

    def close(self) -> None:
        if self.closed or self.done:
            return
        self.closed = True
        self._output.stop()


class PlaybackController:
    """Plays synthesized speech, at most one audio at a time.

    ``play`` closes whatever is active before starting, so two audible
    responses never overlap. ``speak_stream`` prefetches synthesis of later
    sentences while earlier ones are playing but always plays in order.
    """

    def __init__(
        self,
        synthesizer: BaseSynthesizer,
        output: BaseAudioOutput,
        max_concurrent_synthesis: int = 2,
        max_playback_s: float = 120.0,
        voice: Optional[str] = None,
    ):
        self.synthesizer = synthesizer
        self.output = output
        self.max_concurrent_synthesis = max(1, max_concurrent_synthesis)
        self.max_playback_s = max_playback_s
        self.voice = voice

        self._lock = asyncio.Lock()
        self._active: Optional[PlaybackHandle] = None
        self._synthesis_tasks: Set[asyncio.Task] = set()
        self._generation = 0

    @property
    def is_playing(self) -> bool:
        return self._active is not None and not self._active.done and not self._active.closed

    def stop(self) -> None:
        """Stop playback and cancel pending synthesis. Synchronous."""
        self._generation += 1
        if self._active is not None:
            self._active.close()
        for task in list(self._synthesis_tasks):
            task.cancel()

    async def play(self, audio: bytes) -> bool:
        """Play audio after closing the active playback.

        Returns True on natural end, False if stopped, timed out or failed.
        """
        generation = self._generation
        if self._active is not None:
            self._active.close()

        async with self._lock:
            if generation != self._generation:
                return False

            handle = PlaybackHandle(self.output)
            self._active = handle
            try:
                finished = await asyncio.wait_for(
                    self.output.play(audio),
                    timeout=self.max_playback_s,
                )
                return bool(finished) and not handle.closed
            except asyncio.TimeoutError:
                logger.error(f"Playback exceeded {self.max_playback_s}s, stopping")
                handle.close()
                return False
            except Exception as e:
                logger.error(f"Playback error: {e}")
                return False
            finally:
                handle.done = True
                if self._active is handle:
                    self._active = None

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._synthesis_tasks.add(task)
        task.add_done_callback(self._synthesis_tasks.discard)
        return task

    async def _synthesize(self, text: str, priority: Optional[Priority]) -> bytes:
        return await self.synthesizer.synthesize(text, priority=priority, voice=self.voice)

    async def speak(self, text: str, priority: Optional[Priority] = None) -> bool:
        """Synthesize text and play it."""
        generation = self._generation
        task = self._track(asyncio.create_task(self._synthesize(text, priority)))
        await asyncio.wait({task})

        if generation != self._generation or task.cancelled():
            return False
        error = task.exception()
        if error is not None:
            logger.error(f"Synthesis failed: {error}")
            return False
        return await self.play(task.result())

    async def speak_stream(
        self,
        texts: AsyncIterator[str],
        priority: Optional[Priority] = None,
    ) -> bool:
        """Synthesize and play a stream of sentences in order.

        Returns True when every sentence was played to the end. Failed
        sentences are skipped. Exceptions raised by ``texts`` propagate
        once the queued sentences are handled.
        """
        generation = self._generation
        semaphore = asyncio.Semaphore(self.max_concurrent_synthesis)
        queue: asyncio.Queue = asyncio.Queue()

        async def synthesize_limited(text: str) -> bytes:
            async with semaphore:
                return await self._synthesize(text, priority)

        async def feed() -> None:
            try:
                async for text in texts:
                    if generation != self._generation:
                        break
                    if not text or not text.strip():
                        continue
                    # Backpressure: at most one sentence waiting on the semaphore
                    await semaphore.acquire()
                    semaphore.release()
                    task = self._track(asyncio.create_task(synthesize_limited(text)))
                    await queue.put((text, task))
            finally:
                await queue.put(None)

        feeder = asyncio.create_task(feed())
        all_played = True

        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                text, task = item
                await asyncio.wait({task})

                if generation != self._generation:
                    all_played = False
                    break
                if task.cancelled() or task.exception() is not None:
                    error = None if task.cancelled() else task.exception()
                    logger.warning(f"Skipping sentence after synthesis failure: {error}")
                    all_played = False
                    continue

                if not await self.play(task.result()):
                    all_played = False
                    if generation != self._generation:
                        break

            if generation != self._generation:
                feeder.cancel()
                await asyncio.gather(feeder, return_exceptions=True)
                return False

            # Surface errors from the sentence source
            await feeder
            return all_played
        finally:
            if not feeder.done():
                feeder.cancel()
                await asyncio.gather(feeder, return_exceptions=True)
            while not queue.empty():
                item = queue.get_nowait()
                if item is not None:
                    item[1].cancel()
