"""Recording session state models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .transcription import ERROR_MESSAGES, ErrorKind


class RecordingSessionState(Enum):
    """Lifecycle states of a recording attempt."""
    IDLE = "idle"
    REQUESTING = "requesting"  # Awaiting device permission
    ACTIVE = "active"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    PERMISSION_DENIED = "permission_denied"
    FAILED = "failed"


@dataclass(frozen=True)
class RecordingFailure:
    """Categorized failure of a recording attempt."""
    kind: ErrorKind
    detail: str = ""

    @property
    def message(self) -> str:
        """Human-readable message for this failure kind."""
        return ERROR_MESSAGES[self.kind]


@dataclass(frozen=True)
class StateChangeEvent:
    """Transition of the recording state machine."""
    previous: RecordingSessionState
    current: RecordingSessionState
    elapsed_seconds: int = 0
    failure: Optional[RecordingFailure] = None
    timestamp: datetime = field(default_factory=datetime.now)
