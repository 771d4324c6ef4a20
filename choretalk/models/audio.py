"""Audio-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence


@dataclass(frozen=True)
class AudioChunk:
    """One fragment of encoded audio produced during a capture session."""
    data: bytes
    sequence_number: int  # Production ordinal within the session, starting at 1
    timestamp: float  # Unix timestamp when the chunk was emitted
    peak_level: float = 0.0  # 0.0 to 1.0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FinalizedRecording:
    """Immutable concatenation of every chunk of one completed session."""
    data: bytes
    mime_type: str
    chunk_count: int
    duration_seconds: float
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_chunks(cls, chunks: Sequence[AudioChunk], mime_type: str,
                    duration_seconds: float) -> "FinalizedRecording":
        """Assemble chunks in arrival order into one recording.

        Args:
            chunks: Chunks exactly as they were delivered by the capture session
            mime_type: MIME type negotiated by the capture session
            duration_seconds: Wall-clock length of the session

        Returns:
            FinalizedRecording whose size equals the sum of the chunk sizes
        """
        return cls(
            data=b"".join(chunk.data for chunk in chunks),
            mime_type=mime_type,
            chunk_count=len(chunks),
            duration_seconds=duration_seconds,
        )


@dataclass(frozen=True)
class AudioConstraints:
    """Requested input processing and format for device acquisition."""
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    sample_rate: int = 16000
    channels: int = 1


@dataclass
class CaptureStats:
    """Audio capture statistics."""
    is_open: bool
    duration_seconds: float
    sample_rate: int
    channels: int
    total_chunks: int
    total_bytes: int
    overflow_count: int
    peak_level: float
