"""Cognition layer modules (history, response generation, speech output)."""
from .conversation import ConversationHistory, HistoryEntry
from .playback import BaseAudioOutput, PlaybackController, PlaybackHandle, SoundDeviceOutput
from .responder import BaseResponder, HttpResponder, ResponseResult, create_responder
from .sentence_divider import Sentence, SentenceDivider, split_sentences
from .tts import BaseSynthesizer, HttpSynthesizer, create_synthesizer

__all__ = [
    "ConversationHistory",
    "HistoryEntry",
    "BaseAudioOutput",
    "PlaybackController",
    "PlaybackHandle",
    "SoundDeviceOutput",
    "BaseResponder",
    "HttpResponder",
    "ResponseResult",
    "create_responder",
    "Sentence",
    "SentenceDivider",
    "split_sentences",
    "BaseSynthesizer",
    "HttpSynthesizer",
    "create_synthesizer",
]
