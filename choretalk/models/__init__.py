"""Data models for the ChoreTalk application."""

from .audio import AudioChunk, AudioConstraints, CaptureStats, FinalizedRecording
from .recording import RecordingFailure, RecordingSessionState, StateChangeEvent
from .transcription import (
    ERROR_MESSAGES,
    ErrorKind,
    TranscriptionError,
    TranscriptionResult,
    TranscriptionText,
)
from .chores import ExtractedTask, Room, Task

__all__ = [
    "AudioChunk",
    "AudioConstraints",
    "CaptureStats",
    "FinalizedRecording",
    "RecordingFailure",
    "RecordingSessionState",
    "StateChangeEvent",
    "ERROR_MESSAGES",
    "ErrorKind",
    "TranscriptionError",
    "TranscriptionResult",
    "TranscriptionText",
    # Hand-off models for room/task consumers
    "ExtractedTask",
    "Room",
    "Task",
]
