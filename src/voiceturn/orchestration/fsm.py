"""Finite State Machine (FSM) for the conversation session.

Transitions are pure: ``transition(state, event)`` looks the pair up in a
table and returns the target state together with the effects the session has
to carry out. ``FiniteStateMachine`` only adds a current state and state
handlers on top of the table.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..logging_config import setup_logger

logger = setup_logger("voiceturn.fsm")


class State(Enum):
    """Session states."""
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    AWAITING_RESPONSE = "awaiting_response"
    SPEAKING = "speaking"
    DISCONNECTED = "disconnected"


class Event(Enum):
    """Session events."""
    SESSION_STARTED = "session_started"
    GREETING_QUEUED = "greeting_queued"
    CHUNK_CAPTURED = "chunk_captured"
    TURN_BOUNDARY = "turn_boundary"
    TRANSCRIPT_ACCEPTED = "transcript_accepted"
    TRANSCRIPT_REJECTED = "transcript_rejected"
    RESPONSE_RECEIVED = "response_received"
    RESPONSE_FAILED = "response_failed"
    PLAYBACK_ENDED = "playback_ended"
    STOP = "stop"
    FATAL_ERROR = "fatal_error"


class Effect(Enum):
    """Side effects requested by a transition."""
    PAUSE_CAPTURE = "pause_capture"
    RESUME_CAPTURE = "resume_capture"
    DISCARD_CAPTURE = "discard_capture"
    ABANDON_ACTIVE_TURN = "abandon_active_turn"
    STOP_PLAYBACK = "stop_playback"
    STOP_CAPTURE = "stop_capture"
    CLOSE_OUTPUT = "close_output"
    CLEAR_BUFFERS = "clear_buffers"
    INVALIDATE_TOKEN = "invalidate_token"


@dataclass(frozen=True)
class FSMTransition:
    """FSM transition definition."""
    from_state: State
    event: Event
    to_state: State
    effects: Tuple[Effect, ...] = ()


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition."""
    from_state: State
    event: Event
    to_state: State
    effects: Tuple[Effect, ...] = field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        return self.from_state != self.to_state


_TEARDOWN = (
    Effect.INVALIDATE_TOKEN,
    Effect.STOP_PLAYBACK,
    Effect.STOP_CAPTURE,
    Effect.CLOSE_OUTPUT,
    Effect.CLEAR_BUFFERS,
)

_CAPTURING_STATES = (State.LISTENING, State.TRANSCRIBING, State.AWAITING_RESPONSE)


def _build_transitions() -> List[FSMTransition]:
    transitions = [
        FSMTransition(State.IDLE, Event.SESSION_STARTED, State.LISTENING),
        FSMTransition(State.DISCONNECTED, Event.SESSION_STARTED, State.LISTENING),
        FSMTransition(
            State.LISTENING, Event.GREETING_QUEUED, State.SPEAKING,
            (Effect.PAUSE_CAPTURE, Effect.DISCARD_CAPTURE),
        ),
        FSMTransition(State.LISTENING, Event.TURN_BOUNDARY, State.TRANSCRIBING),
        # Barge-in: a newer turn supersedes the outstanding one
        FSMTransition(
            State.TRANSCRIBING, Event.TURN_BOUNDARY, State.TRANSCRIBING,
            (Effect.ABANDON_ACTIVE_TURN,),
        ),
        FSMTransition(
            State.AWAITING_RESPONSE, Event.TURN_BOUNDARY, State.TRANSCRIBING,
            (Effect.ABANDON_ACTIVE_TURN,),
        ),
        FSMTransition(State.TRANSCRIBING, Event.TRANSCRIPT_REJECTED, State.LISTENING),
        FSMTransition(State.TRANSCRIBING, Event.TRANSCRIPT_ACCEPTED, State.AWAITING_RESPONSE),
        FSMTransition(
            State.AWAITING_RESPONSE, Event.RESPONSE_RECEIVED, State.SPEAKING,
            (Effect.PAUSE_CAPTURE, Effect.DISCARD_CAPTURE),
        ),
        FSMTransition(State.AWAITING_RESPONSE, Event.RESPONSE_FAILED, State.LISTENING),
        FSMTransition(
            State.SPEAKING, Event.RESPONSE_FAILED, State.LISTENING,
            (Effect.STOP_PLAYBACK, Effect.RESUME_CAPTURE),
        ),
        FSMTransition(
            State.SPEAKING, Event.PLAYBACK_ENDED, State.LISTENING,
            (Effect.RESUME_CAPTURE,),
        ),
    ]

    # Chunks are only accepted while capture is armed
    for state in _CAPTURING_STATES:
        transitions.append(FSMTransition(state, Event.CHUNK_CAPTURED, state))

    for state in State:
        if state is State.DISCONNECTED:
            continue
        transitions.append(FSMTransition(state, Event.STOP, State.DISCONNECTED, _TEARDOWN))
        transitions.append(FSMTransition(state, Event.FATAL_ERROR, State.DISCONNECTED, _TEARDOWN))

    return transitions


DEFAULT_TRANSITIONS: Tuple[FSMTransition, ...] = tuple(_build_transitions())

_TABLE: Dict[Tuple[State, Event], FSMTransition] = {
    (t.from_state, t.event): t for t in DEFAULT_TRANSITIONS
}


def transition(state: State, event: Event) -> Optional[TransitionResult]:
    """Pure transition function: ``(state, event) -> (state, effects)``.

    Returns None when the event is not accepted in ``state``.
    """
    entry = _TABLE.get((state, event))
    if entry is None:
        return None
    return TransitionResult(
        from_state=state,
        event=event,
        to_state=entry.to_state,
        effects=entry.effects,
    )


class FiniteStateMachine:
    """Finite State Machine holding the current session state."""

    def __init__(
        self,
        initial_state: State = State.IDLE,
        transitions: Optional[Iterable[FSMTransition]] = None
    ):
        self.current_state = initial_state
        if transitions is None:
            self._table = _TABLE
        else:
            self._table = {(t.from_state, t.event): t for t in transitions}
        self._state_handlers: Dict[State, List[Callable[[TransitionResult], None]]] = {}

    def add_state_handler(
        self,
        state: State,
        handler: Callable[[TransitionResult], None]
    ) -> None:
        """Add a handler called when entering a state."""
        self._state_handlers.setdefault(state, []).append(handler)

    def can_transition(self, event: Event) -> bool:
        """Check if there's a valid transition for this event."""
        return (self.current_state, event) in self._table

    def fire(self, event: Event) -> Optional[TransitionResult]:
        """Process an event and transition state."""
        entry = self._table.get((self.current_state, event))
        if entry is None:
            logger.warning(f"No valid transition: {event.value} from {self.current_state.value}")
            return None

        result = TransitionResult(
            from_state=self.current_state,
            event=event,
            to_state=entry.to_state,
            effects=entry.effects,
        )
        self.current_state = result.to_state

        if result.changed:
            logger.info(f"FSM: {result.from_state.value} -> {result.to_state.value} via {event.value}")
            for handler in self._state_handlers.get(result.to_state, []):
                handler(result)
        else:
            logger.debug(f"FSM: {result.to_state.value} via {event.value}")

        return result


def create_default_fsm() -> FiniteStateMachine:
    """Create the default FSM for a conversation session."""
    return FiniteStateMachine(initial_state=State.IDLE)
