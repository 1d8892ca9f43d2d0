"""Perception layer modules (capture, chunking, VAD, transcription)."""
from .audio import AudioChunk, Chunker, concat_chunks, encode_wav
from .capture import BaseCapture, MicrophoneCapture
from .transcription import BaseTranscriber, HttpTranscriber, TranscriptionResult, create_transcriber
from .vad import BaseVAD, EnergyVAD, VADResult, create_vad

__all__ = [
    "AudioChunk",
    "Chunker",
    "concat_chunks",
    "encode_wav",
    "BaseCapture",
    "MicrophoneCapture",
    "BaseTranscriber",
    "HttpTranscriber",
    "TranscriptionResult",
    "create_transcriber",
    "BaseVAD",
    "EnergyVAD",
    "VADResult",
    "create_vad",
]
