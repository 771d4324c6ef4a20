"""File storage for finalized recordings and transcription outcomes."""

import json
import logging
import random
import string
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..audio.formats import as_container, file_extension
from ..models.audio import FinalizedRecording
from ..models.transcription import TranscriptionError, TranscriptionResult, TranscriptionText

logger = logging.getLogger(__name__)

INFO_FILENAME = "recording.json"


@dataclass
class StoredRecording:
    """Metadata written beside each saved recording."""
    session_id: str
    created_at: datetime
    audio_file: str
    mime_type: str
    size_bytes: int
    chunk_count: int
    duration_seconds: float
    transcript: Optional[str] = None
    confidence: Optional[float] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None


class RecordingStore:
    """Keeps one directory per recording under ``<data_dir>/recordings``."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize recording store.

        Args:
            data_dir: Base directory for all stored data
        """
        self.data_dir = Path(data_dir)
        self.recordings_dir = self.data_dir / "recordings"
        self.recordings_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"RecordingStore initialized with data_dir: {self.data_dir}")

    def create_session_id(self) -> str:
        """Timestamp-based id with a random suffix so ids never collide."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        return f"{timestamp}_{random_suffix}"

    def get_session_path(self, session_id: str) -> Path:
        return self.recordings_dir / session_id

    def save_recording(self, recording: FinalizedRecording,
                       result: Optional[TranscriptionResult] = None) -> StoredRecording:
        """Write the audio and its metadata to a new session directory.

        Raw PCM is wrapped in a WAV header so the file plays directly.

        Args:
            recording: Recording to save
            result: Optional transcription outcome stored alongside

        Returns:
            Metadata of the saved recording
        """
        session_id = self.create_session_id()
        session_path = self.get_session_path(session_id)
        session_path.mkdir(parents=True, exist_ok=True)

        payload, container_type = as_container(recording.data, recording.mime_type)
        audio_file = session_path / f"audio.{file_extension(container_type)}"
        with open(audio_file, 'wb') as f:
            f.write(payload)
        logger.info(f"Audio file saved: {audio_file} ({len(payload)} bytes)")

        info = StoredRecording(
            session_id=session_id,
            created_at=recording.created_at,
            audio_file=audio_file.name,
            mime_type=recording.mime_type,
            size_bytes=recording.size,
            chunk_count=recording.chunk_count,
            duration_seconds=round(recording.duration_seconds, 3),
        )
        if result is not None:
            self._apply_result(info, result)
        self._write_info(info)
        return info

    def save_transcript(self, session_id: str, result: TranscriptionResult) -> StoredRecording:
        """Attach a transcription outcome to an already saved recording.

        Raises:
            FileNotFoundError: If the session does not exist
        """
        info = self.load_recording_info(session_id)
        if info is None:
            raise FileNotFoundError(f"No stored recording for session: {session_id}")
        self._apply_result(info, result)
        self._write_info(info)
        return info

    def load_recording_info(self, session_id: str) -> Optional[StoredRecording]:
        """Load recording metadata, or None if it is missing or unreadable."""
        info_file = self.get_session_path(session_id) / INFO_FILENAME
        if not info_file.exists():
            logger.warning(f"Recording info file not found: {info_file}")
            return None

        try:
            with open(info_file, 'r') as f:
                data = json.load(f)
            data['created_at'] = datetime.fromisoformat(data['created_at'])
            return StoredRecording(**data)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading recording info {info_file}: {e}")
            return None

    def list_sessions(self) -> List[str]:
        """List stored session ids, oldest first."""
        sessions = [path.name for path in self.recordings_dir.iterdir()
                    if path.is_dir() and (path / INFO_FILENAME).exists()]
        sessions.sort()
        logger.debug(f"Found {len(sessions)} stored recordings")
        return sessions

    @staticmethod
    def _apply_result(info: StoredRecording, result: TranscriptionResult) -> None:
        if isinstance(result, TranscriptionText):
            info.transcript = result.text
            info.confidence = result.confidence
            info.error_kind = None
            info.error_message = None
        elif isinstance(result, TranscriptionError):
            info.transcript = None
            info.confidence = None
            info.error_kind = result.kind.value
            info.error_message = result.message

    def _write_info(self, info: StoredRecording) -> None:
        info_file = self.get_session_path(info.session_id) / INFO_FILENAME
        data = asdict(info)
        data['created_at'] = info.created_at.isoformat()
        with open(info_file, 'w') as f:
            json.dump(data, f, indent=2)
        logger.info(f"Recording info saved: {info_file}")
