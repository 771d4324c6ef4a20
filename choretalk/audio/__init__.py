"""Audio capture and processing module."""

from .capture import (
    AudioCaptureSession,
    CaptureError,
    DeviceBusyError,
    DeviceUnavailableError,
    PermissionDeniedError,
)
from .encoder import ChunkEncoder
from .timer import RecordingTimer

__all__ = [
    'AudioCaptureSession',
    'CaptureError',
    'DeviceBusyError',
    'DeviceUnavailableError',
    'PermissionDeniedError',
    'ChunkEncoder',
    'RecordingTimer',
]
