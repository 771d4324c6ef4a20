"""OpenAI Whisper transcription backend."""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..audio.formats import as_container, file_extension
from .base import AbstractTranscriptionBackend, ProviderError, ProviderTranscript

logger = logging.getLogger(__name__)


class OpenAIWhisperBackend(AbstractTranscriptionBackend):
    """Sends audio to the OpenAI transcription API as multipart form data."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "whisper-1",
                 language: str = "en-US", timeout_seconds: float = 30.0,
                 base_url: str = "https://api.openai.com/v1/audio/transcriptions"):
        """Initialize OpenAI Whisper backend.

        Args:
            api_key: OpenAI API key
            model: Transcription model to use
            language: Language code; only the primary subtag is sent (e.g. 'en')
            timeout_seconds: Total request timeout
            base_url: Transcription endpoint URL
        """
        super().__init__(language)
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url

        logger.info(f"OpenAIWhisperBackend initialized with model: {model}")

    def initialize(self) -> bool:
        if not self.api_key:
            raise ValueError("OpenAI API key is required (set OPENAI_API_KEY)")
        return True

    def build_form(self, audio: bytes, mime_type: str) -> aiohttp.FormData:
        """Build the multipart body, wrapping raw PCM in a WAV container."""
        payload, container_type = as_container(audio, mime_type)
        form = aiohttp.FormData()
        form.add_field("file", payload,
                       filename=f"audio.{file_extension(container_type)}",
                       content_type=container_type)
        form.add_field("model", self.model)
        if self.language:
            form.add_field("language", self.language.split("-")[0])
        return form

    async def transcribe_audio(self, audio: bytes, mime_type: str) -> ProviderTranscript:
        """Send audio to OpenAI and return the transcript."""
        if not self.api_key:
            raise ProviderError("OpenAI API key is not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        logger.info(f"Sending {len(audio)} bytes ({mime_type}) to OpenAI API...")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.base_url, headers=headers,
                                        data=self.build_form(audio, mime_type)) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"OpenAI API error: {response.status} {error_text}")
                        raise ProviderError(f"OpenAI API error: {response.status} - {error_text}")
                    result = await response.json()
        except asyncio.TimeoutError as e:
            raise ProviderError(f"OpenAI API timeout after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"OpenAI API request failed: {e}") from e

        logger.info("Transcription successful")
        return ProviderTranscript(
            text=(result.get("text") or "").strip(),
            confidence=result.get("confidence"),
            provider="OpenAI Whisper",
        )
