"""Google Speech-to-Text transcription backend."""

import asyncio
import time
import logging
from typing import Optional

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

from ..audio.formats import is_pcm, l16_to_native, parse_mime_type, pcm_format
from .base import AbstractTranscriptionBackend, ProviderError, ProviderTranscript

logger = logging.getLogger(__name__)

_Encoding = speech.RecognitionConfig.AudioEncoding

# Browser-recorded Opus containers are always 48kHz
_CONTAINER_ENCODINGS = {
    "audio/webm": (_Encoding.WEBM_OPUS, 48000),
    "audio/ogg": (_Encoding.OGG_OPUS, 48000),
    "audio/wav": (_Encoding.LINEAR16, None),
    "audio/x-wav": (_Encoding.LINEAR16, None),
    "audio/flac": (_Encoding.FLAC, None),
}


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend for transcription."""

    name = "google"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 language: str = "en-US",
                 model: str = "latest_short",
                 enable_automatic_punctuation: bool = True,
                 timeout_seconds: float = 30.0):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            language: Language code (e.g., 'en-US', 'es-ES')
            model: Recognition model name
            enable_automatic_punctuation: Enable automatic punctuation
            timeout_seconds: Per-request deadline for recognize calls
        """
        super().__init__(language)
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.model = model
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.timeout_seconds = timeout_seconds
        self.client = None
        self.project_id = None
        self.service_name = "Google Speech-to-Text"

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)

        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")

        logger.info("Google Speech-to-Text backend initialized successfully")
        return True

    def build_request(self, audio: bytes, mime_type: str):
        """Build the recognition config and audio payload for one request.

        Returns:
            Tuple of (RecognitionConfig, RecognitionAudio)

        Raises:
            ProviderError: If the MIME type has no Google encoding
        """
        if is_pcm(mime_type):
            sample_rate, channels = pcm_format(mime_type)
            encoding = _Encoding.LINEAR16
            # LINEAR16 is little-endian; audio/L16 is network order
            audio = l16_to_native(audio)
        else:
            base, _ = parse_mime_type(mime_type)
            if base not in _CONTAINER_ENCODINGS:
                raise ProviderError(f"Unsupported audio type for Google Speech: {mime_type}")
            encoding, sample_rate = _CONTAINER_ENCODINGS[base]
            channels = None

        config_kwargs = dict(
            encoding=encoding,
            language_code=self.language,
            model=self.model,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
        )
        if sample_rate:
            config_kwargs["sample_rate_hertz"] = sample_rate
        if channels:
            config_kwargs["audio_channel_count"] = channels

        config = speech.RecognitionConfig(**config_kwargs)
        return config, speech.RecognitionAudio(content=audio)

    async def transcribe_audio(self, audio: bytes, mime_type: str) -> ProviderTranscript:
        """Transcribe audio using Google Speech-to-Text."""
        if self.client is None:
            raise ProviderError("Google Speech backend is not initialized")
        config, recognition_audio = self.build_request(audio, mime_type)

        loop = asyncio.get_running_loop()
        start_time = time.time()
        logger.debug(f"Audio size: {len(audio)} bytes; MIME type: {mime_type}; Language: {self.language}")
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.recognize(config=config, audio=recognition_audio,
                                              timeout=self.timeout_seconds))
        except gax_exceptions.DeadlineExceeded as e:
            logger.error("Google STT recognize deadline exceeded")
            raise ProviderError(f"Google Speech recognize timeout: {e}") from e
        except gax_exceptions.ServiceUnavailable as e:
            logger.error("Google STT service unavailable")
            raise ProviderError(f"Google Speech service unavailable: {e}") from e
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error: {e}")
            raise ProviderError(f"Google Speech API error: {e}") from e
        processing_time = time.time() - start_time

        return self.extract_transcript(response, processing_time)

    def extract_transcript(self, response, processing_time: float = 0.0) -> ProviderTranscript:
        """Join the best alternative of every result into one transcript."""
        transcripts = []
        confidences = []
        for result in response.results:
            if not result.alternatives:
                continue
            alternative = result.alternatives[0]
            if alternative.transcript.strip():
                transcripts.append(alternative.transcript.strip())
                confidences.append(alternative.confidence)

        if not transcripts:
            logger.debug("--- NO SPEECH DETECTED ---")
            return ProviderTranscript(text="", provider=self.service_name)

        text = " ".join(transcripts)
        confidence = sum(confidences) / len(confidences) if any(confidences) else None
        logger.debug(f"TRANSCRIPTION SUCCESS: '{text}' (confidence: {confidence}, "
                     f"processing_time: {processing_time:.3f}s)")
        return ProviderTranscript(text=text, confidence=confidence, provider=self.service_name)
