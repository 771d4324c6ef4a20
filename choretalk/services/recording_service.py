"""Recording service that runs one record-then-transcribe session at a time."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..audio.capture import AudioCaptureSession
from ..audio.timer import RecordingTimer
from ..config import ChoreTalkConfig
from ..models.audio import FinalizedRecording
from ..models.recording import RecordingFailure, StateChangeEvent
from ..models.transcription import TranscriptionResult
from ..recording.orchestrator import RecordingOrchestrator
from ..recording.publisher import RecordingPublisher
from ..storage.recording_store import RecordingStore, StoredRecording
from ..transcription.client import TranscriptionClient

logger = logging.getLogger(__name__)


@dataclass
class SessionOutcome:
    """What one recording session produced.

    Exactly one of ``failure`` or ``recording`` is set for a session that got
    past device acquisition; ``result`` is set whenever a recording was
    submitted for transcription.
    """
    recording: Optional[FinalizedRecording] = None
    failure: Optional[RecordingFailure] = None
    result: Optional[TranscriptionResult] = None
    stored: Optional[StoredRecording] = None


class RecordingService:
    """Wires the orchestrator to the transcription client, publisher and store."""

    def __init__(self, config: ChoreTalkConfig,
                 capture_factory: Optional[Callable[[], AudioCaptureSession]] = None,
                 client: Optional[TranscriptionClient] = None,
                 store: Optional[RecordingStore] = None,
                 publisher: Optional[RecordingPublisher] = None,
                 timer: Optional[RecordingTimer] = None):
        """Initialize recording service.

        Args:
            config: Application configuration
            capture_factory: Creates capture sessions (defaults to the microphone)
            client: Transcription client (built from config if omitted)
            store: Recording store (built from config when saving is enabled)
            publisher: Event publisher
            timer: Recording timer
        """
        self.config = config
        self.min_bytes = config.get('recording.min_bytes', 1000)
        self.publisher = publisher or RecordingPublisher()
        self.client = client or TranscriptionClient(
            endpoint_url=config.get_endpoint_url(),
            api_key=config.get_secret('transcription.api_key', 'CHORETALK_API_KEY'),
            timeout_seconds=config.get('transcription.timeout_seconds', 30.0),
            fallback_enabled=config.get('transcription.fallback_enabled', False),
            fallback_url=config.get('transcription.fallback_url'),
            min_bytes=self.min_bytes,
        )
        if store is None and config.get('storage.save_recordings', True):
            store = RecordingStore(config.get_data_directory())
        self.store = store

        self._tick_callbacks: List[Callable[[int], None]] = []
        self._pending: Optional[asyncio.Future] = None

        self.orchestrator = RecordingOrchestrator(
            capture_factory=capture_factory or self._create_capture,
            constraints=config.get_audio_constraints(),
            timer=timer,
            max_seconds=config.get('recording.max_seconds', 60),
            min_bytes=self.min_bytes,
            on_complete=self._handle_complete,
            on_failure=self._handle_failure,
            on_state_change=self._handle_state_change,
            on_tick=self._handle_tick,
        )
        logger.info("RecordingService ready")

    def _create_capture(self) -> AudioCaptureSession:
        return AudioCaptureSession(
            frames_per_buffer=self.config.get('audio.frames_per_buffer', 1024),
            chunk_interval_ms=self.config.get('audio.chunk_interval_ms', 500),
        )

    def on_tick(self, callback: Callable[[int], None]) -> None:
        """Register a callback receiving elapsed seconds while recording."""
        self._tick_callbacks.append(callback)

    async def record_once(self, stop_signal: asyncio.Event) -> SessionOutcome:
        """Record until ``stop_signal`` is set or the maximum length is reached,
        then transcribe the recording.

        Args:
            stop_signal: Set by the caller to stop recording

        Returns:
            SessionOutcome of this session
        """
        loop = asyncio.get_running_loop()
        self._pending = loop.create_future()
        try:
            if not await self.orchestrator.start():
                failure = self.orchestrator.last_failure
                if failure is None:
                    logger.warning("Recording did not start")
                return SessionOutcome(failure=failure)

            stop_waiter = asyncio.ensure_future(stop_signal.wait())
            try:
                await asyncio.wait({stop_waiter, self._pending},
                                   return_when=asyncio.FIRST_COMPLETED)
            finally:
                stop_waiter.cancel()

            if not self._pending.done():
                self.orchestrator.stop()
            if not self._pending.done():
                # stop() finalizes synchronously; anything else is an abandoned attempt
                self.orchestrator.cancel()
                return SessionOutcome()
            outcome = self._pending.result()
        finally:
            self._pending = None

        if outcome.recording is None:
            return outcome

        outcome.result = await self.client.transcribe(outcome.recording)
        self.publisher.publish_transcription(outcome.result)
        if self.store is not None:
            outcome.stored = self.store.save_recording(outcome.recording, outcome.result)
        return outcome

    def _resolve(self, outcome: SessionOutcome) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(outcome)

    def _handle_complete(self, recording: FinalizedRecording) -> None:
        self.publisher.publish_completed(recording)
        self._resolve(SessionOutcome(recording=recording))

    def _handle_failure(self, failure: RecordingFailure) -> None:
        logger.warning(f"Recording failed ({failure.kind.value}): {failure.detail}")
        self.publisher.publish_failed(failure)
        self._resolve(SessionOutcome(failure=failure))

    def _handle_state_change(self, event: StateChangeEvent) -> None:
        self.publisher.publish_state_change(event)

    def _handle_tick(self, elapsed: int) -> None:
        for callback in list(self._tick_callbacks):
            callback(elapsed)
