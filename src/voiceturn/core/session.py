"""Conversation session - ties all components together."""
import asyncio
import uuid
from typing import Awaitable, Callable, List, Optional, Set

import numpy as np

from ..cognition.conversation import ConversationHistory, HistoryEntry
from ..cognition.playback import BaseAudioOutput, PlaybackController, SoundDeviceOutput
from ..cognition.responder import BaseResponder, create_responder
from ..cognition.sentence_divider import split_sentences
from ..cognition.tts import BaseSynthesizer, create_synthesizer
from ..config import Config, get_config
from ..exceptions import APIError, DeviceError, ResponseError, SessionError, TranscriptionError
from ..logging_config import setup_logger
from ..messages import HistoryTurn, Priority, SessionSnapshot
from ..orchestration.accumulator import TurnAggregator
from ..orchestration.cancellation import CancellationToken
from ..orchestration.fsm import Effect, Event, State, TransitionResult, create_default_fsm
from ..orchestration.hallucination import HallucinationFilter
from ..orchestration.silence import SilenceDetector
from ..perception.audio import AudioChunk, Chunker, concat_chunks, encode_wav
from ..perception.capture import BaseCapture, MicrophoneCapture
from ..perception.transcription import BaseTranscriber, create_transcriber
from ..perception.vad import create_vad

logger = setup_logger("voiceturn.session")

StateChangeCallback = Callable[[State, State], None]
ErrorCallback = Callable[[Exception], None]
TranscriptCallback = Callable[[str], None]


class ConversationSession:
    """One voice conversation between a user and the assistant.

    Coordinates:
    - Capture, chunking and VAD
    - Silence based end-of-turn detection
    - Transcription, hallucination filtering and fragment aggregation
    - Response generation and ordered speech playback

    All state lives on the instance. Chunk intake is synchronous; every turn
    runs in its own task and carries a cancellation token that is checked
    before any result is applied.
    """

    def __init__(
        self,
        transcriber: BaseTranscriber,
        responder: BaseResponder,
        synthesizer: BaseSynthesizer,
        capture: BaseCapture,
        output: BaseAudioOutput,
        config: Optional[Config] = None,
    ):
        self.transcriber = transcriber
        self.responder = responder
        self.synthesizer = synthesizer
        self.capture = capture
        self.output = output

        self.config = config or get_config()
        cfg = self.config

        # Core components
        self.fsm = create_default_fsm()
        self.chunker = Chunker(
            sample_rate=cfg.capture.sample_rate,
            chunk_duration_ms=cfg.capture.chunk_duration_ms,
            vad=create_vad(cfg),
        )
        self.silence = SilenceDetector(
            chunk_duration_ms=cfg.capture.chunk_duration_ms,
            silence_timeout_ms=cfg.turn.silence_timeout_ms,
        )
        self.hallucinations = HallucinationFilter(cfg.turn.hallucinations)
        self.aggregator = self._new_aggregator()
        self.playback = PlaybackController(
            synthesizer=synthesizer,
            output=output,
            max_concurrent_synthesis=cfg.playback.max_concurrent_synthesis,
            max_playback_s=cfg.playback.max_playback_s,
            voice=cfg.session.voice,
        )
        self._history = ConversationHistory(history_window=cfg.session.history_window)

        # Turn tracking
        self._session_id: Optional[str] = None
        self._session_token = CancellationToken()
        self._turn_token: Optional[CancellationToken] = None
        self._turn_task: Optional[asyncio.Task] = None
        self._speech_chunks: List[AudioChunk] = []
        self._fragment_tasks: List[asyncio.Task] = []
        self._tasks: Set[asyncio.Task] = set()

        # Event callbacks
        self._on_state_change: Optional[StateChangeCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_transcript: Optional[TranscriptCallback] = None

    def _new_aggregator(self) -> TurnAggregator:
        return TurnAggregator(early_dispatch_chars=self.config.turn.early_dispatch_chars)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Acquire the devices and start listening.

        Raises:
            SessionError: If the session is already running.
            DeviceError: If the microphone or speaker cannot be opened.
        """
        if self.state not in (State.IDLE, State.DISCONNECTED):
            raise SessionError(f"Session already running ({self.state.value})")

        logger.info("Starting conversation session")
        self._session_id = uuid.uuid4().hex
        self._session_token = CancellationToken()
        self._history.clear()
        self._clear_buffers()

        try:
            self.output.open()
            await self.capture.start(self.feed_audio, self._on_capture_error)
        except DeviceError as e:
            logger.error(f"Device error on start: {e}")
            self.capture.stop()
            self.output.close()
            self._fire(Event.FATAL_ERROR)
            self._report_error(e)
            raise

        self._fire(Event.SESSION_STARTED)
        logger.info(f"Session {self._session_id} listening")

        greeting = self.config.session.greeting
        if greeting:
            self._history.add_assistant_message(greeting)
            self._fire(Event.GREETING_QUEUED)
            token = self._session_token.child()
            self._spawn(self._speak(token, greeting, None))

    def stop(self) -> None:
        """Stop the session. Idempotent and synchronous.

        In-flight work is invalidated before this returns; nothing that
        resolves afterwards can touch history or state.
        """
        if self.state == State.DISCONNECTED:
            return
        logger.info("Stopping conversation session")
        self._fire(Event.STOP)

    async def close(self) -> None:
        """Stop, wait for cancelled work to unwind and close the clients."""
        self.stop()
        await self.wait_until_settled()
        await self.transcriber.close()
        await self.responder.close()
        await self.synthesizer.close()

    async def wait_until_settled(self) -> None:
        """Wait until no session task is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> "ConversationSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Chunk intake
    # ------------------------------------------------------------------

    def feed_audio(self, samples: np.ndarray) -> None:
        """Capture callback: chunk raw samples and feed complete chunks."""
        if self.state in (State.IDLE, State.DISCONNECTED):
            return
        for chunk in self.chunker.push(samples):
            self.feed_chunk(chunk)

    def feed_chunk(self, chunk: AudioChunk) -> bool:
        """Process one classified chunk. Returns False if it was dropped."""
        if not self.fsm.can_transition(Event.CHUNK_CAPTURED):
            logger.debug(f"Dropping chunk {chunk.sequence} in {self.state.value}")
            return False
        self._fire(Event.CHUNK_CAPTURED)

        boundary = self.silence.update(chunk.has_energy)
        if chunk.has_energy:
            self._speech_chunks.append(chunk)
            if self._buffered_ms() >= self.config.turn.max_segment_ms:
                self._flush_segment()
        elif boundary:
            self._end_turn()
        return True

    def _buffered_ms(self) -> int:
        return sum(c.duration_ms for c in self._speech_chunks)

    def _take_speech(self) -> Optional[np.ndarray]:
        if not self._speech_chunks:
            return None
        audio = concat_chunks(self._speech_chunks)
        self._speech_chunks = []
        return audio

    def _flush_segment(self) -> None:
        """Send long speech for transcription without ending the turn."""
        audio = self._take_speech()
        if audio is None:
            return
        aggregator = self.aggregator
        slot = aggregator.reserve()
        logger.info(f"Flushing {len(audio)} samples as fragment {slot}")
        task = self._spawn(self._transcribe_fragment(aggregator, slot, audio))
        self._fragment_tasks.append(task)

    def _end_turn(self) -> None:
        """Silence boundary reached."""
        audio = self._take_speech()
        duration_ms = 0
        if audio is not None:
            duration_ms = int(len(audio) * 1000 / self.chunker.sample_rate)

        if duration_ms < self.config.turn.min_audio_ms:
            if self.aggregator.is_empty():
                logger.debug(f"Ignoring {duration_ms}ms of audio, too short")
                return
            audio = None

        self._dispatch(audio)

    def _dispatch(self, audio: Optional[np.ndarray]) -> None:
        """Hand the captured turn over to a turn task."""
        if self._fire(Event.TURN_BOUNDARY) is None:
            return

        # The turn owns its fragments; capture continues into a fresh buffer
        aggregator, self.aggregator = self.aggregator, self._new_aggregator()
        fragments, self._fragment_tasks = self._fragment_tasks, []
        slot = aggregator.reserve() if audio is not None else None

        token = self._session_token.child()
        self._turn_token = token
        self._turn_task = self._spawn(self._run_turn(token, aggregator, slot, audio, fragments))

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------

    async def _transcribe(self, audio: np.ndarray) -> Optional[str]:
        """Transcribe and filter. Returns None for anything not worth a reply."""
        wav = encode_wav(audio, self.chunker.sample_rate)
        try:
            result = await asyncio.wait_for(
                self.transcriber.transcribe(wav),
                timeout=self.config.endpoints.request_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.error("Transcription timeout")
            self._report_error(TranscriptionError("Transcription timeout"))
            return None
        except APIError as e:
            logger.error(f"Transcription failed: {e}")
            self._report_error(e)
            return None

        if result.no_speech_detected:
            logger.debug(f"No speech: {result.reason}")
            return None

        text = result.text.strip()
        if len(text) < self.config.turn.min_transcript_chars:
            return None
        return self.hallucinations.accept(text)

    async def _transcribe_fragment(
        self,
        aggregator: TurnAggregator,
        slot: int,
        audio: np.ndarray,
    ) -> None:
        text = await self._transcribe(audio)
        if self._session_token.cancelled:
            return
        aggregator.fill(slot, text)

        if (
            self.config.turn.enable_early_dispatch
            and aggregator is self.aggregator
            and self.state == State.LISTENING
            and aggregator.should_dispatch_early()
        ):
            logger.info("Dispatching turn early")
            self._dispatch(None)

    async def _run_turn(
        self,
        token: CancellationToken,
        aggregator: TurnAggregator,
        slot: Optional[int],
        audio: Optional[np.ndarray],
        fragments: List[asyncio.Task],
    ) -> None:
        try:
            if audio is not None:
                text = await self._transcribe(audio)
                if token.cancelled:
                    return
                aggregator.fill(slot, text)

            if fragments:
                await asyncio.gather(*fragments, return_exceptions=True)
                if token.cancelled:
                    return

            user_text = aggregator.take()
            if not user_text:
                self._fire(Event.TRANSCRIPT_REJECTED)
                return

            logger.info(f"User: {user_text}")
            if self._on_transcript:
                self._on_transcript(user_text)

            context = self._history.to_wire()
            self._history.add_user_message(user_text)
            self._fire(Event.TRANSCRIPT_ACCEPTED)

            if self.config.endpoints.stream_responses:
                await self._respond_streamed(token, user_text, context)
            else:
                await self._respond(token, user_text, context)
        except Exception as e:
            logger.error(f"Turn failed: {e!r}")
            await self._turn_failed(token, e)
        finally:
            aggregator.clear()
            if self._turn_token is token:
                self._turn_token = None
                self._turn_task = None

    async def _respond(
        self,
        token: CancellationToken,
        user_text: str,
        context: List[HistoryTurn],
    ) -> None:
        try:
            result = await asyncio.wait_for(
                self.responder.respond(user_text, self._session_id, context),
                timeout=self.config.endpoints.request_timeout_s,
            )
        except asyncio.TimeoutError:
            await self._response_failed(token, ResponseError("Response timeout"))
            return
        except APIError as e:
            await self._response_failed(token, e)
            return

        if token.cancelled:
            logger.debug("Discarding response for cancelled turn")
            return

        logger.info(f"Assistant: {result.text[:100]}")
        self._history.add_assistant_message(result.text)
        self._fire(Event.RESPONSE_RECEIVED)
        await self._speak(token, result.text, result.priority)

    async def _respond_streamed(
        self,
        token: CancellationToken,
        user_text: str,
        context: List[HistoryTurn],
    ) -> None:
        parts: List[str] = []

        async def deltas():
            async for delta in self.responder.stream(user_text, self._session_id, context):
                if token.cancelled:
                    return
                parts.append(delta)
                yield delta

        async def sentences():
            async for sentence in split_sentences(
                deltas(),
                min_sentence_chars=self.config.playback.min_sentence_chars,
            ):
                if token.cancelled:
                    return
                if self.state == State.AWAITING_RESPONSE:
                    self._fire(Event.RESPONSE_RECEIVED)
                yield sentence

        try:
            await self.playback.speak_stream(sentences())
        except APIError as e:
            await self._response_failed(token, e)
            return

        if token.cancelled:
            return

        reply = "".join(parts).strip()
        if self.state == State.AWAITING_RESPONSE:
            await self._response_failed(token, ResponseError("Empty response"))
            return

        logger.info(f"Assistant: {reply[:100]}")
        self._history.add_assistant_message(reply)
        await self._finish_speaking(token)

    async def _response_failed(self, token: CancellationToken, error: Exception) -> None:
        """Report the failure and return to listening.

        A reply that fails after speech started still waits out the echo
        guard delay before capture is re-armed.
        """
        if token.cancelled:
            return
        logger.error(f"Response failed: {error}")
        self._report_error(error)

        if self.state == State.SPEAKING:
            self.playback.stop()
            if not await self._guard_delay(token):
                return
        self._fire(Event.RESPONSE_FAILED)

    async def _turn_failed(self, token: CancellationToken, error: Exception) -> None:
        """Recover from an unexpected error raised while processing a turn."""
        if token.cancelled:
            return
        if self.state == State.TRANSCRIBING:
            self._report_error(error)
            self._fire(Event.TRANSCRIPT_REJECTED)
        elif self.state in (State.AWAITING_RESPONSE, State.SPEAKING):
            await self._response_failed(token, error)

    async def _speak(
        self,
        token: CancellationToken,
        text: str,
        priority: Optional[Priority],
    ) -> None:
        played = await self.playback.speak(text, priority)
        if not played:
            logger.warning("Playback did not complete")
        await self._finish_speaking(token)

    async def _guard_delay(self, token: CancellationToken) -> bool:
        """Sleep ``rearm_delay_ms``. Returns False if the turn is no longer speaking."""
        if token.cancelled:
            return False
        delay = self.config.playback.rearm_delay_ms / 1000
        if delay > 0:
            await asyncio.sleep(delay)
        return not token.cancelled and self.state == State.SPEAKING

    async def _finish_speaking(self, token: CancellationToken) -> None:
        """Wait out the echo guard delay, then listen again."""
        if await self._guard_delay(token):
            self._fire(Event.PLAYBACK_ENDED)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _fire(self, event: Event) -> Optional[TransitionResult]:
        result = self.fsm.fire(event)
        if result is None:
            return None

        for effect in result.effects:
            self._apply_effect(effect)

        if result.changed and self._on_state_change:
            self._on_state_change(result.from_state, result.to_state)
        return result

    def _apply_effect(self, effect: Effect) -> None:
        if effect == Effect.PAUSE_CAPTURE:
            self.capture.pause()
        elif effect == Effect.RESUME_CAPTURE:
            self.chunker.reset()
            self.silence.reset()
            self.capture.resume()
        elif effect == Effect.DISCARD_CAPTURE:
            self._discard_capture()
        elif effect == Effect.ABANDON_ACTIVE_TURN:
            self._abandon_turn()
        elif effect == Effect.STOP_PLAYBACK:
            self.playback.stop()
        elif effect == Effect.STOP_CAPTURE:
            self.capture.stop()
        elif effect == Effect.CLOSE_OUTPUT:
            self.output.close()
        elif effect == Effect.CLEAR_BUFFERS:
            self._clear_buffers()
        elif effect == Effect.INVALIDATE_TOKEN:
            self._invalidate()

    def _discard_capture(self) -> None:
        """Drop the turn being captured."""
        for task in self._fragment_tasks:
            task.cancel()
        self._fragment_tasks = []
        self._speech_chunks = []
        self.aggregator.clear()
        self.chunker.reset()
        self.silence.reset()

    def _abandon_turn(self) -> None:
        if self._turn_token is not None:
            logger.info("Abandoning outstanding turn")
            self._turn_token.cancel("superseded")
        if self._turn_task is not None and self._turn_task is not asyncio.current_task():
            self._turn_task.cancel()
        self._turn_token = None
        self._turn_task = None

    def _clear_buffers(self) -> None:
        self._discard_capture()
        self.aggregator = self._new_aggregator()

    def _invalidate(self) -> None:
        self._session_token.cancel("stopped")
        for task in list(self._tasks):
            task.cancel()
        self._turn_token = None
        self._turn_task = None

    # ------------------------------------------------------------------
    # Tasks and callbacks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Session task failed: {error!r}")
            self._report_error(error)

    def _on_capture_error(self, error: Exception) -> None:
        if self.state == State.DISCONNECTED:
            return
        logger.error(f"Capture failed: {error}")
        self._fire(Event.FATAL_ERROR)
        self._report_error(error)

    def _report_error(self, error: Exception) -> None:
        if self._on_error:
            self._on_error(error)

    def set_state_change_callback(self, callback: StateChangeCallback) -> None:
        """Set callback for state changes, called with (old, new)."""
        self._on_state_change = callback

    def set_error_callback(self, callback: ErrorCallback) -> None:
        """Set callback for non-fatal and fatal errors."""
        self._on_error = callback

    def set_transcript_callback(self, callback: TranscriptCallback) -> None:
        """Set callback for accepted user transcripts."""
        self._on_transcript = callback

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def state(self) -> State:
        return self.fsm.current_state

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def history(self) -> List[HistoryEntry]:
        return self._history.entries

    @property
    def silence_duration_ms(self) -> int:
        return self.silence.time_since_last_speech_ms

    def snapshot(self) -> SessionSnapshot:
        """Session status for display."""
        return SessionSnapshot(
            state=self.state.value,
            session_id=self._session_id,
            history=[entry.to_wire() for entry in self._history.entries],
        )


def create_session(config: Optional[Config] = None) -> ConversationSession:
    """Create a session wired to the configured endpoints and default devices."""
    cfg = config or get_config()
    return ConversationSession(
        transcriber=create_transcriber(cfg),
        responder=create_responder(cfg),
        synthesizer=create_synthesizer(cfg),
        capture=MicrophoneCapture(
            sample_rate=cfg.capture.sample_rate,
            block_size=cfg.capture.block_size,
            device=cfg.capture.device,
        ),
        output=SoundDeviceOutput(
            sample_rate=cfg.playback.sample_rate,
            device=cfg.playback.device,
        ),
        config=cfg,
    )
