"""Unit tests for AudioCaptureSession."""

import errno
from unittest.mock import Mock

import pyaudio
import pytest

from choretalk.audio.capture import (
    PA_DEVICE_UNAVAILABLE,
    PA_INVALID_DEVICE,
    AudioCaptureSession,
    CaptureError,
    CaptureState,
    DeviceBusyError,
    DeviceUnavailableError,
    PermissionDeniedError,
    classify_open_error,
)
from choretalk.models.audio import AudioConstraints
from choretalk.models.transcription import ErrorKind


def stream_callback_of(mock_pyaudio):
    """Return the stream callback the session handed to PyAudio.open()."""
    return mock_pyaudio['instance'].open.call_args.kwargs['stream_callback']


@pytest.mark.unit
class TestAudioCaptureSession:
    """Test cases for AudioCaptureSession with mocked PyAudio."""

    def test_open_requests_int16_input_stream(self, capture_session, mock_pyaudio):
        capture_session.open(AudioConstraints(sample_rate=16000, channels=1))

        kwargs = mock_pyaudio['instance'].open.call_args.kwargs
        assert kwargs['format'] == pyaudio.paInt16
        assert kwargs['rate'] == 16000
        assert kwargs['channels'] == 1
        assert kwargs['input'] is True
        assert kwargs['frames_per_buffer'] == 1024
        assert capture_session.state is CaptureState.OPEN
        assert capture_session.mime_type == "audio/L16;rate=16000;channels=1"

    def test_mime_type_before_open(self, capture_session):
        with pytest.raises(RuntimeError):
            capture_session.mime_type

    def test_chunks_delivered_in_order(self, capture_session, mock_pyaudio):
        received = []
        capture_session.on_chunk(received.append)
        capture_session.open(AudioConstraints())

        callback = stream_callback_of(mock_pyaudio)
        for _ in range(5):
            result = callback(b'\x00' * 2048, 1024, {}, 0)
            assert result == (None, pyaudio.paContinue)

        # 100ms chunks at 16kHz mono are 3200 bytes
        assert [c.sequence_number for c in received] == [1, 2, 3]
        assert all(c.size == 3200 for c in received)

    def test_close_flushes_partial_chunk_and_releases(self, capture_session, mock_pyaudio):
        received = []
        capture_session.on_chunk(received.append)
        capture_session.open(AudioConstraints())
        stream_callback_of(mock_pyaudio)(b'\x00' * 2048, 1024, {}, 0)

        capture_session.close()

        assert len(received) == 1
        assert received[0].size == 2048
        assert capture_session.state is CaptureState.CLOSED
        mock_pyaudio['stream'].stop_stream.assert_called_once()
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_close_is_idempotent(self, capture_session, mock_pyaudio):
        capture_session.open(AudioConstraints())
        capture_session.close()
        capture_session.close()

        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_close_before_open_is_noop(self, capture_session, mock_pyaudio):
        capture_session.close()
        mock_pyaudio['factory'].assert_not_called()

    def test_cannot_reopen(self, capture_session):
        capture_session.open(AudioConstraints())
        capture_session.close()
        with pytest.raises(RuntimeError):
            capture_session.open(AudioConstraints())

    def test_no_default_device(self, capture_session, mock_pyaudio):
        mock_pyaudio['instance'].get_default_input_device_info.side_effect = OSError("No Default Input Device Available")

        with pytest.raises(DeviceUnavailableError):
            capture_session.open(AudioConstraints())
        assert capture_session.state is CaptureState.FAILED
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_device_without_enough_channels(self, capture_session, mock_pyaudio):
        mock_pyaudio['instance'].get_default_input_device_info.return_value = {
            'name': 'Output only', 'maxInputChannels': 0,
        }
        with pytest.raises(DeviceUnavailableError):
            capture_session.open(AudioConstraints())

    def test_busy_device(self, capture_session, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = OSError(PA_DEVICE_UNAVAILABLE, "Device unavailable")

        with pytest.raises(DeviceBusyError) as exc_info:
            capture_session.open(AudioConstraints())
        assert exc_info.value.kind is ErrorKind.DEVICE_BUSY
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_unexpected_open_error_releases_device(self, capture_session, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = TypeError("bad stream argument")

        with pytest.raises(TypeError):
            capture_session.open(AudioConstraints())
        assert capture_session.state is CaptureState.FAILED
        assert not capture_session.is_open
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_invalid_chunk_interval_fails_open(self, mock_pyaudio):
        session = AudioCaptureSession(chunk_interval_ms=0, pyaudio_factory=mock_pyaudio['factory'])

        with pytest.raises(ValueError):
            session.open(AudioConstraints())
        assert session.state is CaptureState.FAILED
        mock_pyaudio['factory'].assert_not_called()

    def test_permission_denied(self, capture_session, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = OSError(errno.EACCES, "Permission denied")

        with pytest.raises(PermissionDeniedError):
            capture_session.open(AudioConstraints())

    def test_device_error_releases_and_notifies(self, capture_session, mock_pyaudio):
        errors = []
        received = []
        capture_session.on_error(errors.append)
        capture_session.on_chunk(received.append)
        capture_session.open(AudioConstraints())
        stream_callback_of(mock_pyaudio)(b'\x00' * 2048, 1024, {}, 0)

        capture_session.fail(OSError("Stream died"))

        assert len(errors) == 1
        assert isinstance(errors[0], CaptureError)
        assert errors[0].kind is ErrorKind.DEVICE_ERROR
        assert capture_session.state is CaptureState.FAILED
        mock_pyaudio['instance'].terminate.assert_called_once()

        # Nothing is flushed after a failure
        capture_session.close()
        assert received == []
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_check_health_detects_stopped_stream(self, capture_session, mock_pyaudio):
        errors = []
        capture_session.on_error(errors.append)
        capture_session.open(AudioConstraints())

        capture_session.check_health()
        assert errors == []

        mock_pyaudio['stream'].is_active.return_value = False
        capture_session.check_health()
        assert len(errors) == 1
        assert capture_session.state is CaptureState.FAILED

    def test_overflow_counted(self, capture_session, mock_pyaudio):
        capture_session.open(AudioConstraints())
        stream_callback_of(mock_pyaudio)(b'\x00' * 64, 32, {}, pyaudio.paInputOverflow)
        assert capture_session.get_stats().overflow_count == 1

    def test_stats(self, capture_session, mock_pyaudio):
        capture_session.open(AudioConstraints())
        stream_callback_of(mock_pyaudio)(b'\x00' * 3200, 1600, {}, 0)

        stats = capture_session.get_stats()
        assert stats.is_open
        assert stats.total_chunks == 1
        assert stats.total_bytes == 3200
        assert stats.sample_rate == 16000


@pytest.mark.unit
class TestClassifyOpenError:

    def test_permission_error(self):
        assert isinstance(classify_open_error(PermissionError("nope")), PermissionDeniedError)

    def test_busy(self):
        assert isinstance(classify_open_error(OSError(PA_DEVICE_UNAVAILABLE, "busy")), DeviceBusyError)

    def test_invalid_device(self):
        assert isinstance(classify_open_error(OSError(PA_INVALID_DEVICE, "Invalid device")),
                          DeviceUnavailableError)

    def test_capture_error_passthrough(self):
        error = DeviceBusyError("busy")
        assert classify_open_error(error) is error

    def test_unknown_error(self):
        error = classify_open_error(ValueError("Invalid sample rate"))
        assert isinstance(error, DeviceUnavailableError)
