"""Custom exceptions for voiceturn."""


class VoiceTurnError(Exception):
    """Base exception for voiceturn."""
    pass


class DeviceError(VoiceTurnError):
    """Microphone or speaker device errors. Fatal to a session."""
    pass


class SessionError(VoiceTurnError):
    """Session lifecycle errors."""
    pass


class APIError(VoiceTurnError):
    """Collaborator API related errors."""
    pass


class TranscriptionError(APIError):
    """Transcription endpoint errors."""
    pass


class ResponseError(APIError):
    """Response generation endpoint errors."""
    pass


class SynthesisError(APIError):
    """Speech synthesis endpoint errors."""
    pass


class PlaybackError(VoiceTurnError):
    """Audio playback errors."""
    pass
