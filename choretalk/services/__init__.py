"""Application services composing capture, transcription and storage."""

from .recording_service import RecordingService, SessionOutcome

__all__ = ["RecordingService", "SessionOutcome"]
