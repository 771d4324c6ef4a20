"""Transcription module for ChoreTalk.

The client side (``TranscriptionClient``) and the server side
(``create_app``) share the wire contract in ``contract``. Providers behind
the endpoint are created by name with ``create_backend``.
"""

import logging

from .base import AbstractTranscriptionBackend, ProviderError, ProviderTranscript
from .client import TranscriptionClient
from .contract import ErrorResponse, TranscribeRequest, TranscribeResponse
from .endpoint import create_app

logger = logging.getLogger(__name__)

__all__ = [
    "AbstractTranscriptionBackend",
    "ProviderError",
    "ProviderTranscript",
    "TranscriptionClient",
    "ErrorResponse",
    "TranscribeRequest",
    "TranscribeResponse",
    "create_app",
    "create_backend",
    "available_providers",
]

PROVIDERS = ("google", "openai")


def available_providers():
    return list(PROVIDERS)


def create_backend(config, name: str = None) -> AbstractTranscriptionBackend:
    """Create and initialize the provider backend selected in the config.

    Provider modules are imported on demand so that a deployment only needs
    the SDK of the provider it actually uses.

    Args:
        config: ChoreTalkConfig
        name: Provider name overriding ``endpoint.provider``

    Raises:
        KeyError: If the provider name is unknown
        RuntimeError: If the backend fails to initialize
    """
    key = (name or config.get('endpoint.provider', 'openai')).strip().lower()
    timeout = config.get('transcription.timeout_seconds', 30.0)
    language = config.get('google_cloud.language', 'en-US')

    if key == "google":
        from .google_backend import GoogleSpeechBackend

        backend = GoogleSpeechBackend(
            credentials_path=config.get_google_credentials_path(),
            language=language,
            model=config.get('google_cloud.model', 'latest_short'),
            enable_automatic_punctuation=config.get('google_cloud.enable_automatic_punctuation', True),
            timeout_seconds=timeout,
        )
    elif key == "openai":
        from .openai_backend import OpenAIWhisperBackend

        backend = OpenAIWhisperBackend(
            api_key=config.get_secret('openai.api_key', 'OPENAI_API_KEY'),
            model=config.get('openai.model', 'whisper-1'),
            language=language,
            timeout_seconds=timeout,
        )
    else:
        raise KeyError(f"Unknown provider '{key}'. Available: {', '.join(PROVIDERS)}")

    logger.info(f"Initializing {key} transcription backend...")
    if not backend.initialize():
        raise RuntimeError(f"{key} transcription backend failed to initialize")
    logger.info(f"{key} transcription backend initialized successfully")
    return backend
