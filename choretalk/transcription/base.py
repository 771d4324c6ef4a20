"""Abstract base classes for speech-recognition providers behind the endpoint."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Expected provider failure (misconfiguration, rejected request, upstream error)."""


@dataclass
class ProviderTranscript:
    """Text extracted by a provider; empty text means nothing was recognized."""
    text: str
    confidence: Optional[float] = None
    provider: str = ""


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for speech-recognition providers."""

    name = "abstract"

    def __init__(self, language: str = "en-US"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    async def transcribe_audio(self, audio: bytes, mime_type: str) -> ProviderTranscript:
        """Transcribe one complete audio object.

        Args:
            audio: Decoded audio bytes
            mime_type: MIME type declared by the client

        Returns:
            ProviderTranscript with the recognized text

        Raises:
            ProviderError: If the provider rejects the audio or cannot be reached
        """

    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration."""
        return True

    def cleanup(self) -> None:
        """Clean up backend resources."""
