"""Orchestration layer modules (FSM, turn detection, aggregation)."""
from .accumulator import TranscriptFragment, TurnAggregator
from .cancellation import CancellationToken
from .fsm import Effect, Event, FiniteStateMachine, State, TransitionResult, create_default_fsm, transition
from .hallucination import DEFAULT_HALLUCINATIONS, HallucinationFilter
from .silence import SilenceDetector

__all__ = [
    "TranscriptFragment",
    "TurnAggregator",
    "CancellationToken",
    "Effect",
    "Event",
    "FiniteStateMachine",
    "State",
    "TransitionResult",
    "create_default_fsm",
    "transition",
    "DEFAULT_HALLUCINATIONS",
    "HallucinationFilter",
    "SilenceDetector",
]
