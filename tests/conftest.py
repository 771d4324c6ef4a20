"""Pytest configuration and fixtures for ChoreTalk tests."""

import pytest
import tempfile
import logging
from pathlib import Path
from unittest.mock import Mock
import numpy as np
import yaml
from pubsub import pub

from choretalk.audio.capture import AudioCaptureSession


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop pubsub listeners registered by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def sample_audio_chunk():
    """Generate 1024 samples of 16-bit little-endian sine wave audio."""
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t)
    audio_data = (wave_data * 32767 * 0.5).astype('<i2')
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio instance and stream for testing without audio hardware."""
    mock_stream = Mock()
    mock_stream.is_active.return_value = True
    mock_stream.stop_stream.return_value = None
    mock_stream.close.return_value = None

    mock_pyaudio_instance = Mock()
    mock_pyaudio_instance.open.return_value = mock_stream
    mock_pyaudio_instance.terminate.return_value = None
    mock_pyaudio_instance.get_default_input_device_info.return_value = {
        'name': 'Mock Microphone',
        'maxInputChannels': 2,
        'defaultSampleRate': 16000.0,
    }

    factory = Mock(return_value=mock_pyaudio_instance)
    return {
        'factory': factory,
        'instance': mock_pyaudio_instance,
        'stream': mock_stream,
    }


@pytest.fixture
def capture_session(mock_pyaudio):
    """Capture session backed by the mocked PyAudio."""
    return AudioCaptureSession(
        frames_per_buffer=1024,
        chunk_interval_ms=100,
        pyaudio_factory=mock_pyaudio['factory'],
    )


@pytest.fixture
def write_config(temp_data_dir):
    """Write a YAML config into the temp dir and return its path."""
    def _write(data: dict, name: str = "choretalk.yaml") -> str:
        path = Path(temp_data_dir) / name
        with open(path, 'w') as f:
            yaml.safe_dump(data, f)
        return str(path)
    return _write
