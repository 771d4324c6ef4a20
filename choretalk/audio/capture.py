"""Microphone capture session producing ordered audio chunks."""

import asyncio
import queue
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional

import pyaudio

from ..models.audio import AudioChunk, AudioConstraints, CaptureStats
from ..models.transcription import ErrorKind
from .encoder import ChunkEncoder

logger = logging.getLogger(__name__)

# PortAudio error codes surfaced by PyAudio as OSError.errno
PA_INVALID_CHANNEL_COUNT = -9998
PA_INVALID_DEVICE = -9996
PA_DEVICE_UNAVAILABLE = -9985

_PERMISSION_MARKERS = ("permission", "denied", "not allowed", "not authorized")


class CaptureError(Exception):
    """Device acquisition or capture failure."""
    kind = ErrorKind.DEVICE_ERROR


class DeviceUnavailableError(CaptureError):
    kind = ErrorKind.DEVICE_UNAVAILABLE


class PermissionDeniedError(CaptureError):
    kind = ErrorKind.PERMISSION_DENIED


class DeviceBusyError(CaptureError):
    kind = ErrorKind.DEVICE_BUSY


class CaptureState(Enum):
    NEW = "new"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


def classify_open_error(error: Exception) -> CaptureError:
    """Map an exception raised while opening the input stream to a CaptureError."""
    if isinstance(error, CaptureError):
        return error
    message = str(error)
    if isinstance(error, PermissionError) or any(m in message.lower() for m in _PERMISSION_MARKERS):
        return PermissionDeniedError(message or "Microphone access was refused")
    code = getattr(error, "errno", None)
    if code == PA_DEVICE_UNAVAILABLE:
        return DeviceBusyError(message or "Input device is already in use")
    if code in (PA_INVALID_DEVICE, PA_INVALID_CHANNEL_COUNT):
        return DeviceUnavailableError(message or "No usable input device")
    return DeviceUnavailableError(message or "Input device could not be opened")


class AudioCaptureSession:
    """Owns one microphone handle and turns its input into AudioChunks.

    PortAudio invokes the stream callback on its own thread. Raw buffers are
    queued there and drained on the owner's event loop, so chunk and error
    callbacks always run on one logical execution context, in production order.
    Without an event loop, buffers are drained inline (used by tests and
    synchronous callers).
    """

    def __init__(
        self,
        frames_per_buffer: int = 1024,
        chunk_interval_ms: int = 500,
        pyaudio_factory: Callable[[], Any] = None,
    ):
        """Initialize capture session.

        Args:
            frames_per_buffer: Frames PortAudio hands to each stream callback
            chunk_interval_ms: Audio duration covered by each emitted chunk
            pyaudio_factory: Callable returning a PyAudio instance
        """
        self.frames_per_buffer = frames_per_buffer
        self.chunk_interval_ms = chunk_interval_ms
        self._pyaudio_factory = pyaudio_factory or pyaudio.PyAudio

        self.constraints: Optional[AudioConstraints] = None
        self.encoder: Optional[ChunkEncoder] = None
        self.state = CaptureState.NEW

        self._chunk_callbacks: List[Callable[[AudioChunk], None]] = []
        self._error_callbacks: List[Callable[[CaptureError], None]] = []

        self._pa = None
        self._stream = None
        self._released = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._raw_queue: "queue.SimpleQueue[bytes]" = queue.SimpleQueue()

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.total_bytes = 0
        self.overflow_count = 0
        self.peak_level = 0.0

    @property
    def mime_type(self) -> str:
        if self.encoder is None:
            raise RuntimeError("Capture session has not been opened")
        return self.encoder.mime_type

    @property
    def is_open(self) -> bool:
        return self.state is CaptureState.OPEN

    def on_chunk(self, callback: Callable[[AudioChunk], None]) -> None:
        """Register a consumer invoked once per produced chunk, in order."""
        self._chunk_callbacks.append(callback)

    def on_error(self, callback: Callable[[CaptureError], None]) -> None:
        """Register a consumer for terminal device errors during capture."""
        self._error_callbacks.append(callback)

    def open(self, constraints: AudioConstraints,
             loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Acquire the default input device and start encoding immediately.

        Blocking; call from an executor when running on an event loop.

        Args:
            constraints: Requested input processing and format
            loop: Event loop on which chunk and error callbacks are delivered

        Raises:
            DeviceUnavailableError: No input device exists
            PermissionDeniedError: Access to the device was refused
            DeviceBusyError: The device is claimed by another process
        """
        if self.state is not CaptureState.NEW:
            raise RuntimeError(f"Capture session cannot be opened from state {self.state.value}")

        self.constraints = constraints
        self._loop = loop
        try:
            device_info = self._acquire(constraints)
        except Exception:
            # Nothing stays claimed after a failed open
            self._release()
            self.state = CaptureState.FAILED
            raise

        self.state = CaptureState.OPEN
        self.start_time = datetime.now()
        logger.info(f"Audio stream opened on '{device_info.get('name')}': "
                    f"{self.encoder.chunk_bytes} bytes/chunk ({self.chunk_interval_ms}ms)")

    def _acquire(self, constraints: AudioConstraints) -> dict:
        """Create the encoder and open the input stream; returns the device info."""
        self.encoder = ChunkEncoder(
            sample_rate=constraints.sample_rate,
            channels=constraints.channels,
            chunk_interval_ms=self.chunk_interval_ms,
        )
        # PortAudio exposes no input DSP controls; the request is recorded only
        logger.info(f"Requesting input device: {constraints.sample_rate}Hz, "
                    f"{constraints.channels} channel(s), "
                    f"echo_cancellation={constraints.echo_cancellation}, "
                    f"noise_suppression={constraints.noise_suppression}, "
                    f"auto_gain_control={constraints.auto_gain_control}")

        try:
            self._pa = self._pyaudio_factory()
            device_info = self._pa.get_default_input_device_info()
        except OSError as e:
            raise DeviceUnavailableError(f"No default input device: {e}") from e

        if int(device_info.get('maxInputChannels', 0)) < constraints.channels:
            raise DeviceUnavailableError(
                f"Input device '{device_info.get('name')}' does not support "
                f"{constraints.channels} channel(s)")

        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=constraints.channels,
                rate=constraints.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=self._stream_callback,
            )
        except (OSError, ValueError) as e:
            raise classify_open_error(e) from e
        return device_info

    def close(self) -> None:
        """Stop encoding, deliver the final partial chunk and release the device.

        Idempotent: closing a closed or failed session is a no-op.
        """
        if self.state is not CaptureState.OPEN:
            logger.debug(f"close() ignored in state {self.state.value}")
            return

        logger.info("Closing audio capture session")
        try:
            # Blocks until the in-flight stream callback has returned
            self._stream.stop_stream()
        except OSError as e:
            logger.warning(f"Error stopping input stream: {e}")

        self._drain()
        final_chunk = self.encoder.flush()
        if final_chunk is not None:
            self._emit(final_chunk)

        self.state = CaptureState.CLOSED
        self._release()
        logger.info(f"Capture closed. Total chunks: {self.total_chunks}, bytes: {self.total_bytes}")

    def fail(self, error: Exception) -> None:
        """Abort the session after a device error and notify error consumers.

        Buffered audio is discarded. The device is released before callbacks run.
        """
        if self.state is not CaptureState.OPEN:
            logger.debug(f"Device error after session ended ignored: {error}")
            return

        capture_error = error if isinstance(error, CaptureError) else CaptureError(str(error))
        logger.error(f"Audio device error: {capture_error}")
        self.state = CaptureState.FAILED
        self.encoder.reset()
        self._release()

        for callback in list(self._error_callbacks):
            callback(capture_error)

    def check_health(self) -> None:
        """Fail the session if the input stream stopped on its own."""
        if self.state is not CaptureState.OPEN or self._stream is None:
            return
        try:
            active = self._stream.is_active()
        except OSError as e:
            self.fail(CaptureError(f"Input stream error: {e}"))
            return
        if not active:
            self.fail(CaptureError("Input stream stopped unexpectedly"))

    def get_stats(self) -> CaptureStats:
        """Get current capture statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()
        constraints = self.constraints or AudioConstraints()
        return CaptureStats(
            is_open=self.is_open,
            duration_seconds=duration,
            sample_rate=constraints.sample_rate,
            channels=constraints.channels,
            total_chunks=self.total_chunks,
            total_bytes=self.total_bytes,
            overflow_count=self.overflow_count,
            peak_level=self.peak_level,
        )

    def _stream_callback(self, in_data: bytes, frame_count: int, time_info: Any, status: int):
        """PortAudio thread: hand the raw buffer to the owner's context."""
        if status & pyaudio.paInputOverflow:
            self.overflow_count += 1
        if in_data:
            self._raw_queue.put(in_data)
            if self._loop is not None:
                try:
                    self._loop.call_soon_threadsafe(self._drain)
                except RuntimeError:
                    # Loop already closed; close() drains whatever is left
                    pass
            else:
                self._drain()
        return None, pyaudio.paContinue

    def _drain(self) -> None:
        """Encode queued raw buffers and publish completed chunks in order."""
        if self.state is not CaptureState.OPEN:
            return
        while True:
            try:
                data = self._raw_queue.get_nowait()
            except queue.Empty:
                break
            try:
                chunks = self.encoder.feed(data)
            except Exception as e:
                self.fail(CaptureError(f"Encoder failure: {e}"))
                return
            for chunk in chunks:
                self._emit(chunk)

    def _emit(self, chunk: AudioChunk) -> None:
        self.total_chunks += 1
        self.total_bytes += chunk.size
        self.peak_level = chunk.peak_level
        logger.debug(f"Chunk {chunk.sequence_number}: {chunk.size} bytes, peak {chunk.peak_level:.2f}")
        for callback in list(self._chunk_callbacks):
            callback(chunk)

    def _release(self) -> None:
        """Release stream and PortAudio exactly once."""
        if self._released:
            return
        self._released = True
        if self._stream is not None:
            try:
                self._stream.close()
            except OSError as e:
                logger.warning(f"Error closing input stream: {e}")
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
        logger.debug("Audio device released")
