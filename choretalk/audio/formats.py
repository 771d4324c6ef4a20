"""MIME type helpers and container wrapping for captured audio."""

import io
import wave
from typing import Dict, Tuple

import numpy as np

PCM_MIME_TYPE = "audio/L16"
SAMPLE_WIDTH_BYTES = 2  # 16-bit audio

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
}


def pcm_mime_type(sample_rate: int, channels: int) -> str:
    """MIME type for 16-bit network-order PCM (RFC 2586)."""
    return f"{PCM_MIME_TYPE};rate={sample_rate};channels={channels}"


def parse_mime_type(mime_type: str) -> Tuple[str, Dict[str, str]]:
    """Split 'audio/L16;rate=16000;channels=1' into ('audio/l16', {'rate': '16000', ...}).

    The base type and parameter names are lower-cased, values are kept as-is.
    """
    parts = [part.strip() for part in (mime_type or "").split(";") if part.strip()]
    if not parts:
        return "", {}
    params = {}
    for part in parts[1:]:
        name, _, value = part.partition("=")
        params[name.strip().lower()] = value.strip()
    return parts[0].lower(), params


def is_pcm(mime_type: str) -> bool:
    base, _ = parse_mime_type(mime_type)
    return base == PCM_MIME_TYPE.lower()


def pcm_format(mime_type: str, default_rate: int = 16000) -> Tuple[int, int]:
    """Return (sample_rate, channels) declared by an audio/L16 MIME type.

    Raises:
        ValueError: rate or channels is not a positive integer
    """
    _, params = parse_mime_type(mime_type)
    try:
        sample_rate = int(params.get("rate", default_rate))
        channels = int(params.get("channels", 1))
    except ValueError:
        raise ValueError(f"Invalid audio/L16 parameters in MIME type: {mime_type}") from None
    if sample_rate <= 0 or channels <= 0:
        raise ValueError(f"Invalid audio/L16 parameters in MIME type: {mime_type}")
    return sample_rate, channels


def native_to_l16(pcm: bytes) -> bytes:
    """Convert little-endian 16-bit samples to network byte order."""
    usable = len(pcm) - (len(pcm) % SAMPLE_WIDTH_BYTES)
    return np.frombuffer(pcm[:usable], dtype="<i2").astype(">i2").tobytes()


def l16_to_native(pcm: bytes) -> bytes:
    """Convert network-order 16-bit samples to little-endian (WAV order)."""
    usable = len(pcm) - (len(pcm) % SAMPLE_WIDTH_BYTES)
    return np.frombuffer(pcm[:usable], dtype=">i2").astype("<i2").tobytes()


def pcm_to_wav(pcm: bytes, sample_rate: int = 16000, channels: int = 1) -> bytes:
    """Wrap little-endian 16-bit PCM bytes in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(SAMPLE_WIDTH_BYTES)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def as_container(audio: bytes, mime_type: str) -> Tuple[bytes, str]:
    """Return audio in a file container a provider can ingest, with its MIME type.

    audio/L16 becomes WAV; every other type passes through unchanged.
    """
    if is_pcm(mime_type):
        sample_rate, channels = pcm_format(mime_type)
        return pcm_to_wav(l16_to_native(audio), sample_rate, channels), "audio/wav"
    base, _ = parse_mime_type(mime_type)
    return audio, base or "audio/webm"


def file_extension(mime_type: str) -> str:
    """File extension for a container MIME type ('bin' when unknown)."""
    base, _ = parse_mime_type(mime_type)
    return _EXTENSIONS.get(base, "bin")
