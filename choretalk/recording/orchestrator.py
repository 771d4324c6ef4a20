"""State-machine based orchestration of one recording attempt at a time."""

import asyncio
import functools
import time
import logging
from typing import Callable, List, Optional

from ..audio.capture import AudioCaptureSession, CaptureError
from ..audio.timer import RecordingTimer
from ..models.audio import AudioChunk, AudioConstraints, FinalizedRecording
from ..models.recording import RecordingFailure, RecordingSessionState, StateChangeEvent
from ..models.transcription import ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_SECONDS = 60
DEFAULT_MIN_BYTES = 1000

CompletionCallback = Callable[[FinalizedRecording], None]
FailureCallback = Callable[[RecordingFailure], None]
StateCallback = Callable[[StateChangeEvent], None]
TickCallback = Callable[[int], None]

_BUSY_STATES = (
    RecordingSessionState.REQUESTING,
    RecordingSessionState.ACTIVE,
    RecordingSessionState.FINALIZING,
)


class RecordingOrchestrator:
    """Single entry point for recording: start, stop, and the resulting hand-off.

    Owns one AudioCaptureSession and one RecordingTimer per attempt. Every
    input (chunk, device error, timer expiry, stop) is a discrete event handled
    synchronously on the event loop; events that make no sense in the current
    state are ignored rather than raised.
    """

    def __init__(
        self,
        capture_factory: Callable[[], AudioCaptureSession],
        constraints: Optional[AudioConstraints] = None,
        timer: Optional[RecordingTimer] = None,
        max_seconds: int = DEFAULT_MAX_SECONDS,
        min_bytes: int = DEFAULT_MIN_BYTES,
        on_complete: Optional[CompletionCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_tick: Optional[TickCallback] = None,
    ):
        """Initialize recording orchestrator.

        Args:
            capture_factory: Creates a fresh capture session for each attempt
            constraints: Device constraints requested on every attempt
            timer: Recording timer (a new one is created if omitted)
            max_seconds: Recording length after which capture stops automatically
            min_bytes: Recordings smaller than this are rejected as too short
            on_complete: Receives each valid FinalizedRecording
            on_failure: Receives permission, device and too-short failures
            on_state_change: Receives every state transition
            on_tick: Receives elapsed seconds while recording
        """
        self._capture_factory = capture_factory
        self.constraints = constraints or AudioConstraints()
        self._timer = timer or RecordingTimer()
        self.max_seconds = max_seconds
        self.min_bytes = min_bytes
        self._on_complete = on_complete
        self._on_failure = on_failure
        self._on_state_change = on_state_change
        self._on_tick = on_tick

        self._state = RecordingSessionState.IDLE
        self._capture: Optional[AudioCaptureSession] = None
        self._chunks: List[AudioChunk] = []
        self._attempt = 0
        self._finalize_started = False
        self._started_at: Optional[float] = None
        self.last_recording: Optional[FinalizedRecording] = None
        self.last_failure: Optional[RecordingFailure] = None

    @property
    def state(self) -> RecordingSessionState:
        return self._state

    @property
    def timer(self) -> RecordingTimer:
        return self._timer

    @property
    def elapsed_seconds(self) -> int:
        return self._timer.elapsed_seconds

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def buffered_bytes(self) -> int:
        return sum(chunk.size for chunk in self._chunks)

    async def start(self) -> bool:
        """Begin a new recording attempt.

        Returns:
            True if the device was acquired and capture is active, False if the
            call was rejected or acquisition failed (failures go to on_failure)
        """
        if self._state in _BUSY_STATES:
            logger.warning(f"start() rejected: recording is {self._state.value}")
            return False

        self._attempt += 1
        attempt = self._attempt
        self._chunks = []
        self._finalize_started = False
        self._started_at = None
        self.last_recording = None
        self.last_failure = None
        self._transition(RecordingSessionState.REQUESTING)

        capture = self._capture_factory()
        capture.on_chunk(functools.partial(self._handle_chunk, capture))
        capture.on_error(functools.partial(self._handle_device_error, capture))
        self._capture = capture

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, capture.open, self.constraints, loop)
        except CaptureError as e:
            if attempt != self._attempt:
                logger.info(f"Abandoned device request failed: {e}")
                return False
            self._capture = None
            logger.warning(f"Device acquisition failed ({e.kind.value}): {e}")
            self._fail(RecordingFailure(e.kind, str(e)))
            return False
        except Exception as e:
            if attempt != self._attempt:
                logger.info(f"Abandoned device request failed: {e}")
                return False
            self._capture = None
            logger.error(f"Unexpected error opening audio device: {e}")
            capture.close()
            self._fail(RecordingFailure(ErrorKind.DEVICE_UNAVAILABLE, str(e) or type(e).__name__))
            return False

        if attempt != self._attempt or self._state is not RecordingSessionState.REQUESTING:
            logger.info("Device granted after the request was abandoned; releasing it")
            capture.close()
            return False

        if not capture.is_open:
            # A device error arrived while the request was still pending
            self._capture = None
            logger.error("Audio device failed before recording became active")
            self._fail(RecordingFailure(ErrorKind.DEVICE_ERROR, "Audio device failed while opening"))
            return False

        self._started_at = time.monotonic()
        self._transition(RecordingSessionState.ACTIVE)
        self._timer.start(self.max_seconds, self._handle_max_reached, on_tick=self._handle_tick)
        logger.info(f"Recording started (max {self.max_seconds}s)")
        return True

    def stop(self) -> None:
        """Stop capturing and finalize the recording.

        Valid while Active. While Requesting, the pending device request is
        abandoned instead. In every other state this is a no-op.
        """
        if self._state is RecordingSessionState.REQUESTING:
            logger.info("stop() while requesting device: abandoning request")
            self._attempt += 1
            self._capture = None
            self._transition(RecordingSessionState.IDLE)
            return
        if self._state is not RecordingSessionState.ACTIVE:
            logger.debug(f"stop() ignored in state {self._state.value}")
            return
        self._finalize()

    def cancel(self) -> None:
        """Tear down any attempt in progress without producing a recording."""
        if self._state not in _BUSY_STATES:
            return
        logger.info(f"Cancelling recording in state {self._state.value}")
        self._attempt += 1
        self._finalize_started = True
        self._timer.stop()
        capture, self._capture = self._capture, None
        self._chunks = []
        if capture is not None:
            capture.close()
        self._transition(RecordingSessionState.IDLE)

    def _handle_chunk(self, source: AudioCaptureSession, chunk: AudioChunk) -> None:
        if source is not self._capture:
            logger.debug(f"Dropping chunk {chunk.sequence_number} from a stale capture session")
            return
        if self._state not in (RecordingSessionState.ACTIVE, RecordingSessionState.FINALIZING):
            logger.debug(f"Dropping chunk {chunk.sequence_number} in state {self._state.value}")
            return
        self._chunks.append(chunk)
        logger.debug(f"Buffered chunk {chunk.sequence_number}: {chunk.size} bytes "
                     f"({len(self._chunks)} chunks)")

    def _handle_device_error(self, source: AudioCaptureSession, error: CaptureError) -> None:
        if source is not self._capture or self._state not in (
                RecordingSessionState.ACTIVE, RecordingSessionState.FINALIZING):
            logger.debug(f"Ignoring device error in state {self._state.value}: {error}")
            return
        logger.error(f"Device error during recording: {error}")
        self._finalize_started = True
        self._timer.stop()
        # The capture session already released the device
        self._capture = None
        discarded = len(self._chunks)
        self._chunks = []
        if discarded:
            logger.info(f"Discarded {discarded} buffered chunks after device error")
        self._fail(RecordingFailure(ErrorKind.DEVICE_ERROR, str(error)))

    def _handle_tick(self, elapsed: int) -> None:
        if self._capture is not None:
            self._capture.check_health()
        if self._on_tick and self._state is RecordingSessionState.ACTIVE:
            self._on_tick(elapsed)

    def _handle_max_reached(self) -> None:
        logger.info("Auto-stopping recording at maximum duration")
        self.stop()

    def _finalize(self) -> None:
        """Close capture, assemble and validate. Runs at most once per attempt."""
        if self._finalize_started:
            logger.debug("Finalize already in progress; ignoring")
            return
        self._finalize_started = True

        self._timer.stop()
        self._transition(RecordingSessionState.FINALIZING)

        capture = self._capture
        # close() delivers the final partial chunk before releasing the device
        capture.close()
        if self._state is not RecordingSessionState.FINALIZING:
            # A device error surfaced while flushing
            return
        self._capture = None

        duration = time.monotonic() - self._started_at if self._started_at else 0.0
        recording = FinalizedRecording.from_chunks(self._chunks, capture.mime_type, duration)
        logger.info(f"Assembled recording: {recording.size} bytes from "
                    f"{recording.chunk_count} chunks ({duration:.1f}s, {recording.mime_type})")

        if recording.size < self.min_bytes:
            logger.warning(f"Recording too short: {recording.size} < {self.min_bytes} bytes")
            self._fail(RecordingFailure(
                ErrorKind.RECORDING_TOO_SHORT,
                f"Recording is {recording.size} bytes; at least {self.min_bytes} required"))
            return

        self.last_recording = recording
        try:
            if self._on_complete:
                self._on_complete(recording)
        finally:
            self._transition(RecordingSessionState.COMPLETED)

    def _fail(self, failure: RecordingFailure) -> None:
        self.last_failure = failure
        if failure.kind is ErrorKind.PERMISSION_DENIED:
            self._transition(RecordingSessionState.PERMISSION_DENIED, failure)
        else:
            self._transition(RecordingSessionState.FAILED, failure)
        if self._on_failure:
            self._on_failure(failure)

    def _transition(self, to_state: RecordingSessionState,
                    failure: Optional[RecordingFailure] = None) -> None:
        from_state = self._state
        if from_state is to_state:
            return
        self._state = to_state
        logger.info(f"Recording state: {from_state.value} -> {to_state.value}")
        if self._on_state_change:
            self._on_state_change(StateChangeEvent(
                previous=from_state,
                current=to_state,
                elapsed_seconds=self._timer.elapsed_seconds,
                failure=failure,
            ))
