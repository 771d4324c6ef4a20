"""HTTP transcription endpoint: base64 audio in, extracted text out.

The endpoint is the provider boundary. Clients only ever see the JSON
contract in ``contract.py``; which speech-recognition provider sits behind
it is chosen when the application is created.
"""

import base64
import binascii
import logging
from typing import Optional

from aiohttp import web
from pydantic import ValidationError

from ..audio.formats import is_pcm, pcm_format
from .base import AbstractTranscriptionBackend, ProviderError
from .contract import ErrorResponse, TranscribeRequest, TranscribeResponse

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'authorization, x-client-info, apikey, content-type',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
}

BACKEND_KEY = web.AppKey("backend", AbstractTranscriptionBackend)


def decode_audio(audio: str) -> bytes:
    """Decode base64 audio, accepting a ``data:<mime>;base64,`` prefix.

    Raises:
        ValueError: If the payload is not valid base64 or decodes to nothing
    """
    if ',' in audio:
        audio = audio.split(',', 1)[1]
    try:
        data = base64.b64decode(audio, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Audio is not valid base64: {e}") from e
    if not data:
        raise ValueError("No audio data provided")
    return data


def _error(status: int, error: str, details: Optional[str] = None) -> web.Response:
    body = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    return web.json_response(body, status=status, headers=CORS_HEADERS)


async def handle_options(request: web.Request) -> web.Response:
    """CORS pre-flight."""
    return web.Response(text='ok', headers=CORS_HEADERS)


async def handle_transcribe(request: web.Request) -> web.Response:
    """Decode the audio, forward it to the provider and return its text."""
    try:
        payload = await request.json()
    except ValueError as e:
        return _error(400, "Request body must be JSON", str(e))

    if not isinstance(payload, dict) or not payload.get('audio'):
        return _error(400, "No audio data provided")

    try:
        transcribe_request = TranscribeRequest.model_validate(payload)
    except ValidationError as e:
        return _error(400, "Invalid transcription request", str(e))

    try:
        audio = decode_audio(transcribe_request.audio)
    except ValueError as e:
        return _error(400, str(e))

    if is_pcm(transcribe_request.mime_type):
        try:
            pcm_format(transcribe_request.mime_type)
        except ValueError as e:
            return _error(400, str(e))

    backend = request.app[BACKEND_KEY]
    logger.info(f"Received audio data: {len(audio)} bytes, MIME type: {transcribe_request.mime_type}")

    try:
        transcript = await backend.transcribe_audio(audio, transcribe_request.mime_type)
    except ProviderError as e:
        logger.error(f"Transcription provider error: {e}")
        return _error(502, str(e), repr(e))
    except Exception as e:
        logger.exception("Transcription error")
        return _error(500, str(e) or type(e).__name__, repr(e))

    confidence = transcript.confidence
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        logger.warning(f"Dropping out-of-range confidence from provider: {confidence}")
        confidence = None
    response = TranscribeResponse(text=transcript.text or None, confidence=confidence)
    logger.info(f"Transcription via {transcript.provider or backend.name}: "
                f"{len(transcript.text)} characters")
    return web.json_response(response.model_dump(exclude_none=True), headers=CORS_HEADERS)


def create_app(backend: AbstractTranscriptionBackend, path: str = "/transcribe") -> web.Application:
    """Create the endpoint application around one provider backend.

    Args:
        backend: Initialized speech-recognition provider
        path: Route serving both POST and the OPTIONS pre-flight

    Returns:
        aiohttp application ready for ``web.run_app`` or a test server
    """
    app = web.Application()
    app[BACKEND_KEY] = backend
    app.router.add_post(path, handle_transcribe)
    app.router.add_route('OPTIONS', path, handle_options)

    async def _cleanup(app: web.Application) -> None:
        app[BACKEND_KEY].cleanup()

    app.on_cleanup.append(_cleanup)
    return app
