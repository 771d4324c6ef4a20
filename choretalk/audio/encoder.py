"""Fixed-interval chunk encoder for live PCM input."""

import time
import logging
from typing import List, Optional

import numpy as np

from ..models.audio import AudioChunk
from .formats import SAMPLE_WIDTH_BYTES, native_to_l16, pcm_mime_type

logger = logging.getLogger(__name__)


class ChunkEncoder:
    """Re-packs device frames into chunks covering a fixed time interval.

    Device callbacks deliver small, driver-sized buffers of little-endian
    16-bit samples. The encoder groups them so that one AudioChunk is emitted
    per ``chunk_interval_ms`` of audio and converts each chunk to audio/L16
    (network byte order), so chunks concatenate into a valid L16 stream.
    """

    def __init__(self, sample_rate: int = 16000, channels: int = 1,
                 chunk_interval_ms: int = 500):
        """Initialize the encoder.

        Args:
            sample_rate: Audio sample rate in Hz
            channels: Number of interleaved channels
            chunk_interval_ms: Audio duration covered by each emitted chunk
        """
        if chunk_interval_ms <= 0:
            raise ValueError("chunk_interval_ms must be positive")
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_interval_ms = chunk_interval_ms

        frame_bytes = channels * SAMPLE_WIDTH_BYTES
        frames_per_chunk = max(1, int(sample_rate * chunk_interval_ms / 1000))
        self.chunk_bytes = frames_per_chunk * frame_bytes

        self._pending = bytearray()
        self._sequence = 0

    @property
    def mime_type(self) -> str:
        return pcm_mime_type(self.sample_rate, self.channels)

    @property
    def pending_bytes(self) -> int:
        return len(self._pending)

    def feed(self, data: bytes) -> List[AudioChunk]:
        """Add device data and return every chunk that became complete."""
        self._pending.extend(data)
        chunks = []
        while len(self._pending) >= self.chunk_bytes:
            payload = bytes(self._pending[:self.chunk_bytes])
            del self._pending[:self.chunk_bytes]
            chunks.append(self._make_chunk(payload))
        return chunks

    def flush(self) -> Optional[AudioChunk]:
        """Emit whatever is left as a final, shorter chunk."""
        if not self._pending:
            return None
        payload = bytes(self._pending)
        self._pending.clear()
        logger.debug(f"Flushing final partial chunk: {len(payload)} bytes")
        return self._make_chunk(payload)

    def reset(self) -> None:
        """Drop buffered data and restart sequence numbering."""
        self._pending.clear()
        self._sequence = 0

    def _make_chunk(self, payload: bytes) -> AudioChunk:
        self._sequence += 1
        return AudioChunk(
            data=native_to_l16(payload),
            sequence_number=self._sequence,
            timestamp=time.time(),
            peak_level=peak_level(payload),
        )


def peak_level(payload: bytes) -> float:
    """Peak absolute amplitude of 16-bit PCM as a fraction of full scale."""
    usable = len(payload) - (len(payload) % SAMPLE_WIDTH_BYTES)
    if usable <= 0:
        return 0.0
    samples = np.frombuffer(payload[:usable], dtype=np.int16)
    return float(np.abs(samples.astype(np.int32)).max()) / 32768.0
