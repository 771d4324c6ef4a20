"""Recording state machine and event publishing."""

from .orchestrator import RecordingOrchestrator
from .publisher import RecordingPublisher

__all__ = [
    "RecordingOrchestrator",
    "RecordingPublisher",
]
