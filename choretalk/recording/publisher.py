"""Recording publisher module for pub/sub event publishing."""

import logging
from pubsub import pub

from ..models.audio import FinalizedRecording
from ..models.recording import RecordingFailure, StateChangeEvent
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

STATE_TOPIC = "recording_state"
COMPLETED_TOPIC = "recording_completed"
FAILED_TOPIC = "recording_failed"
TRANSCRIPTION_TOPIC = "transcription_result"


class RecordingPublisher:
    """Publishes recording lifecycle events using pubsub.pub."""

    def __init__(self, prefix: str = ""):
        """Initialize recording publisher.

        Args:
            prefix: Optional prefix prepended to every topic name
        """
        self.state_topic = prefix + STATE_TOPIC
        self.completed_topic = prefix + COMPLETED_TOPIC
        self.failed_topic = prefix + FAILED_TOPIC
        self.transcription_topic = prefix + TRANSCRIPTION_TOPIC
        logger.info(f"RecordingPublisher initialized with prefix: '{prefix}'")

    def publish_state_change(self, event: StateChangeEvent) -> None:
        pub.sendMessage(self.state_topic, event=event)
        logger.debug(f"Published state change: {event.previous.value} -> {event.current.value}")

    def publish_completed(self, recording: FinalizedRecording) -> None:
        pub.sendMessage(self.completed_topic, recording=recording)
        logger.debug(f"Published completed recording: {recording.size} bytes")

    def publish_failed(self, failure: RecordingFailure) -> None:
        pub.sendMessage(self.failed_topic, failure=failure)
        logger.debug(f"Published recording failure: {failure.kind.value}")

    def publish_transcription(self, result: TranscriptionResult) -> None:
        pub.sendMessage(self.transcription_topic, result=result)
        logger.debug(f"Published transcription result: {type(result).__name__}")
