"""On-disk storage of finalized recordings and their transcripts."""

from .recording_store import RecordingStore, StoredRecording

__all__ = ["RecordingStore", "StoredRecording"]
