"""Transcription-related data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ErrorKind(Enum):
    """Failure categories for the capture and transcription pipeline."""
    DEVICE_UNAVAILABLE = "device_unavailable"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_BUSY = "device_busy"
    DEVICE_ERROR = "device_error"
    RECORDING_TOO_SHORT = "recording_too_short"
    TRANSPORT_FAILURE = "transport_failure"
    EMPTY_TRANSCRIPTION = "empty_transcription"


ERROR_MESSAGES = {
    ErrorKind.DEVICE_UNAVAILABLE: "No microphone detected. Please ensure a microphone is connected.",
    ErrorKind.PERMISSION_DENIED: "Microphone access was denied. Please allow microphone access and try again.",
    ErrorKind.DEVICE_BUSY: "Cannot access microphone. It may be in use by another application.",
    ErrorKind.DEVICE_ERROR: "The microphone stopped working during recording. Please record again.",
    ErrorKind.RECORDING_TOO_SHORT: "Recording too short or empty. Please try again.",
    ErrorKind.TRANSPORT_FAILURE: "Could not reach the transcription service. Please retry.",
    ErrorKind.EMPTY_TRANSCRIPTION: "No speech was recognized. Please record again with clear speech.",
}


@dataclass(frozen=True)
class TranscriptionText:
    """Successful transcription."""
    text: str
    confidence: Optional[float] = None


@dataclass(frozen=True)
class TranscriptionError:
    """Failed transcription with its category and detail."""
    kind: ErrorKind
    message: str

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES[self.kind]


TranscriptionResult = Union[TranscriptionText, TranscriptionError]
