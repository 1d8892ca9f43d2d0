"""Microphone capture."""
import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np

from ..exceptions import DeviceError
from ..logging_config import setup_logger

logger = setup_logger("voiceturn.capture")

BlockCallback = Callable[[np.ndarray], None]
ErrorCallback = Callable[[Exception], None]


class BaseCapture(ABC):
    """Base class for audio capture devices.

    ``on_block`` and ``on_error`` are always invoked on the event loop thread.
    """

    @abstractmethod
    async def start(self, on_block: BlockCallback, on_error: ErrorCallback) -> None:
        """Acquire the device and start delivering blocks.

        Raises:
            DeviceError: If the device cannot be opened.
        """
        pass

    @abstractmethod
    def pause(self) -> None:
        """Stop delivering blocks without releasing the device."""
        pass

    @abstractmethod
    def resume(self) -> None:
        """Resume delivering blocks after ``pause``."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release the device. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass


class MicrophoneCapture(BaseCapture):
    """Captures mono float32 audio from the default input via sounddevice.

    Pausing stops the PortAudio stream itself, so no audio is captured while
    the assistant is speaking.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 4096,
        device: Optional[str] = None,
    ):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_block: Optional[BlockCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._paused = False
        self._stopping = False

    async def start(self, on_block: BlockCallback, on_error: ErrorCallback) -> None:
        import sounddevice as sd

        self._loop = asyncio.get_running_loop()
        self._on_block = on_block
        self._on_error = on_error
        self._stopping = False
        self._paused = False

        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype=np.float32,
                blocksize=self.block_size,
                device=self.device,
                callback=self._audio_callback,
                finished_callback=self._finished_callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._stream = None
            raise DeviceError(f"Cannot open microphone: {e}") from e

        logger.info(f"Microphone started: {self.sample_rate}Hz, block={self.block_size}")

    def _audio_callback(self, indata, frames, time_info, status):
        """PortAudio thread: hand the block over to the event loop."""
        if status:
            logger.warning(f"Audio input status: {status}")
        if self._loop is None or self._on_block is None:
            return
        block = indata[:, 0].copy()
        try:
            self._loop.call_soon_threadsafe(self._deliver, block)
        except RuntimeError:
            # Loop already closed
            pass

    def _deliver(self, block: np.ndarray) -> None:
        if self._paused or self._stopping or self._on_block is None:
            return
        self._on_block(block)

    def _finished_callback(self):
        """PortAudio thread: the stream stopped."""
        if self._stopping or self._paused or self._loop is None:
            return
        error = DeviceError("Microphone stream ended unexpectedly")
        try:
            self._loop.call_soon_threadsafe(self._report_error, error)
        except RuntimeError:
            pass

    def _report_error(self, error: Exception) -> None:
        if self._stopping or self._paused:
            return
        logger.error(f"Capture error: {error}")
        if self._on_error:
            self._on_error(error)

    def pause(self) -> None:
        if self._stream is None or self._paused:
            return
        self._paused = True
        try:
            self._stream.stop()
        except Exception as e:
            logger.warning(f"Error pausing microphone: {e}")
        logger.debug("Microphone paused")

    def resume(self) -> None:
        if self._stream is None or not self._paused:
            return
        try:
            self._stream.start()
        except Exception as e:
            self._paused = False
            self._report_error(DeviceError(f"Cannot resume microphone: {e}"))
            return
        self._paused = False
        logger.debug("Microphone resumed")

    def stop(self) -> None:
        self._stopping = True
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing microphone: {e}")
        self._on_block = None
        self._on_error = None
        logger.info("Microphone stopped")

    @property
    def is_active(self) -> bool:
        return self._stream is not None and not self._paused
