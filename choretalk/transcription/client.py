"""Client for the transcription endpoint."""

import asyncio
import base64
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from pydantic import ValidationError

from ..models.audio import FinalizedRecording
from ..models.transcription import (
    ErrorKind,
    TranscriptionError,
    TranscriptionResult,
    TranscriptionText,
)
from .contract import TranscribeRequest, TranscribeResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class TranscriptionClient:
    """Ships a FinalizedRecording to the endpoint and maps the reply to a result.

    Stateless per call. A failed primary attempt may be followed by exactly one
    fallback attempt over a different transport configuration; nothing is
    retried beyond that.
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        fallback_enabled: bool = False,
        fallback_url: Optional[str] = None,
        min_bytes: int = 0,
    ):
        """Initialize transcription client.

        Args:
            endpoint_url: URL of the transcription endpoint
            api_key: Optional key sent as bearer token and ``apikey`` header
            timeout_seconds: Total timeout of each request
            fallback_enabled: Allow one fallback attempt after a transport failure
            fallback_url: URL for the fallback attempt (defaults to endpoint_url)
            min_bytes: Recordings below this size are refused
        """
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.fallback_enabled = fallback_enabled
        self.fallback_url = fallback_url or endpoint_url
        self.min_bytes = min_bytes

    @staticmethod
    def encode_payload(recording: FinalizedRecording) -> Dict[str, Any]:
        """Base64-encode the recording into the endpoint's request body."""
        request = TranscribeRequest(
            audio=base64.b64encode(recording.data).decode('ascii'),
            mime_type=recording.mime_type,
        )
        return request.model_dump(by_alias=True)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    async def transcribe(self, recording: FinalizedRecording) -> TranscriptionResult:
        """Transcribe one recording.

        Args:
            recording: A validated recording from the orchestrator

        Returns:
            TranscriptionText on success, otherwise TranscriptionError with kind
            TRANSPORT_FAILURE or EMPTY_TRANSCRIPTION

        Raises:
            ValueError: If the recording is below the minimum size
        """
        if recording.size < self.min_bytes:
            raise ValueError(f"Recording of {recording.size} bytes is below the "
                             f"{self.min_bytes} byte minimum and must not be submitted")

        payload = self.encode_payload(recording)
        logger.info(f"Submitting {recording.size} bytes ({recording.mime_type}) for transcription; "
                    f"base64 length {len(payload['audio'])}")

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            result = await self._post(session, self.endpoint_url, payload)

        if (isinstance(result, TranscriptionError)
                and result.kind is ErrorKind.TRANSPORT_FAILURE
                and self.fallback_enabled):
            result = await self._fallback(payload, result)

        if isinstance(result, TranscriptionError):
            logger.error(f"Transcription failed ({result.kind.value}): {result.message}")
        else:
            logger.info(f"Transcription result: '{result.text}'")
        return result

    async def _fallback(self, payload: Dict[str, Any],
                        primary: TranscriptionError) -> TranscriptionResult:
        """Single extra attempt through a fresh, non-pooled, proxy-free session."""
        logger.warning(f"Primary transcription request failed ({primary.message}); "
                       f"trying fallback at {self.fallback_url}")
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        connector = aiohttp.TCPConnector(force_close=True)
        async with aiohttp.ClientSession(timeout=timeout, connector=connector,
                                         trust_env=False) as session:
            result = await self._post(session, self.fallback_url, payload)

        if isinstance(result, TranscriptionText):
            logger.info("Fallback transcription request succeeded")
            return result
        return TranscriptionError(primary.kind, f"{primary.message} (fallback: {result.message})")

    async def _post(self, session: aiohttp.ClientSession, url: str,
                    payload: Dict[str, Any]) -> TranscriptionResult:
        try:
            async with session.post(url, json=payload, headers=self._headers()) as response:
                status = response.status
                raw = await response.text()
        except asyncio.TimeoutError:
            return TranscriptionError(ErrorKind.TRANSPORT_FAILURE,
                                      f"Request timed out after {self.timeout_seconds}s")
        except aiohttp.ClientError as e:
            return TranscriptionError(ErrorKind.TRANSPORT_FAILURE, f"Request failed: {e}")

        return self.interpret_response(status, raw)

    @staticmethod
    def interpret_response(status: int, raw: str) -> TranscriptionResult:
        """Map an HTTP status and body to a TranscriptionResult."""
        body = _parse_success(raw) if 200 <= status < 300 else None

        error = _extract_error(raw)
        if not 200 <= status < 300:
            return TranscriptionError(ErrorKind.TRANSPORT_FAILURE,
                                      error or f"HTTP {status}: {raw[:200]}".strip())
        if error:
            return TranscriptionError(ErrorKind.TRANSPORT_FAILURE, error)
        if body is None:
            return TranscriptionError(ErrorKind.TRANSPORT_FAILURE,
                                      f"Malformed transcription response: {raw[:200]}")
        if not body.text or not body.text.strip():
            return TranscriptionError(ErrorKind.EMPTY_TRANSCRIPTION,
                                      "Transcription succeeded but returned no text")
        return TranscriptionText(text=body.text.strip(), confidence=body.confidence)


def _parse_success(raw: str) -> Optional[TranscribeResponse]:
    """Validate a 2xx body; an invalid confidence is dropped rather than failing the text."""
    try:
        return TranscribeResponse.model_validate_json(raw)
    except ValidationError:
        pass
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict) or data.get('confidence') is None:
        return None
    logger.warning(f"Dropping invalid confidence from transcription response: {data['confidence']!r}")
    data.pop('confidence')
    try:
        return TranscribeResponse.model_validate(data)
    except ValidationError:
        return None


def _extract_error(raw: str) -> Optional[str]:
    """Return the ``error`` field of a JSON object body, if there is one."""
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if isinstance(data, dict) and data.get('error'):
        return str(data['error'])
    return None
