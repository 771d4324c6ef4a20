"""Unit tests for TranscriptionClient against a local aiohttp server."""

import asyncio
import base64

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from choretalk.models.audio import FinalizedRecording
from choretalk.models.transcription import ErrorKind, TranscriptionError, TranscriptionText
from choretalk.transcription.client import TranscriptionClient

MIME_TYPE = "audio/L16;rate=16000;channels=1"


@pytest.fixture
def recording():
    return FinalizedRecording(data=b'\x01\x02' * 1000, mime_type=MIME_TYPE,
                              chunk_count=4, duration_seconds=2.0)


def make_endpoint(status=200, body=None, text=None, delay=0.0, requests=None):
    """Build a fake transcription endpoint with a canned reply."""

    async def handler(request):
        if requests is not None:
            requests.append({'headers': request.headers.copy(), 'json': await request.json()})
        if delay:
            await asyncio.sleep(delay)
        if text is not None:
            return web.Response(status=status, text=text)
        return web.json_response(body if body is not None else {}, status=status)

    app = web.Application()
    app.router.add_post('/transcribe', handler)
    return app


def transcribe_with(app, recording, **client_kwargs):
    """Run one transcription against ``app`` served on a local port."""

    async def run():
        async with TestServer(app) as server:
            client = TranscriptionClient(str(server.make_url('/transcribe')), **client_kwargs)
            return await client.transcribe(recording)

    return asyncio.run(run())


def dead_url():
    return f"http://127.0.0.1:{unused_port()}/transcribe"


@pytest.mark.unit
class TestTranscriptionClient:
    """Test cases for request encoding and reply mapping."""

    def test_success(self, recording):
        result = transcribe_with(make_endpoint(body={'text': '  kitchen needs mopping  ',
                                                     'confidence': 0.93}), recording)
        assert result == TranscriptionText(text='kitchen needs mopping', confidence=0.93)

    def test_request_body_and_headers(self, recording):
        requests = []
        transcribe_with(make_endpoint(body={'text': 'ok'}, requests=requests), recording,
                        api_key='secret')

        assert len(requests) == 1
        payload = requests[0]['json']
        assert set(payload) == {'audio', 'mimeType'}
        assert base64.b64decode(payload['audio']) == recording.data
        assert payload['mimeType'] == MIME_TYPE
        assert requests[0]['headers']['Authorization'] == 'Bearer secret'
        assert requests[0]['headers']['apikey'] == 'secret'

    def test_no_auth_headers_without_key(self, recording):
        requests = []
        transcribe_with(make_endpoint(body={'text': 'ok'}, requests=requests), recording)
        assert 'Authorization' not in requests[0]['headers']

    def test_server_error_message_surfaced(self, recording):
        result = transcribe_with(make_endpoint(status=500, body={'error': 'rate limited'}), recording)
        assert isinstance(result, TranscriptionError)
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.message == 'rate limited'

    def test_server_error_without_json(self, recording):
        result = transcribe_with(make_endpoint(status=502, text='Bad gateway'), recording)
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.message == 'HTTP 502: Bad gateway'

    def test_empty_body_is_empty_transcription(self, recording):
        result = transcribe_with(make_endpoint(body={}), recording)
        assert result.kind is ErrorKind.EMPTY_TRANSCRIPTION

    def test_blank_text_is_empty_transcription(self, recording):
        result = transcribe_with(make_endpoint(body={'text': '   '}), recording)
        assert result.kind is ErrorKind.EMPTY_TRANSCRIPTION

    def test_error_field_with_ok_status(self, recording):
        result = transcribe_with(make_endpoint(body={'error': 'quota exceeded'}), recording)
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.message == 'quota exceeded'

    def test_unreachable_endpoint(self, recording):
        client = TranscriptionClient(dead_url(), timeout_seconds=5)
        result = asyncio.run(client.transcribe(recording))
        assert result.kind is ErrorKind.TRANSPORT_FAILURE

    def test_timeout(self, recording):
        result = transcribe_with(make_endpoint(body={'text': 'late'}, delay=1.0), recording,
                                 timeout_seconds=0.1)
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert 'timed out' in result.message

    def test_refuses_short_recording(self, recording):
        client = TranscriptionClient(dead_url(), min_bytes=5000)
        with pytest.raises(ValueError):
            asyncio.run(client.transcribe(recording))


@pytest.mark.unit
class TestFallback:
    """Test cases for the single fallback attempt."""

    def _run(self, fallback_app, recording, primary_url=None, fallback_enabled=True):
        async def run():
            async with TestServer(fallback_app) as server:
                client = TranscriptionClient(
                    primary_url or dead_url(),
                    timeout_seconds=5,
                    fallback_enabled=fallback_enabled,
                    fallback_url=str(server.make_url('/transcribe')),
                )
                return await client.transcribe(recording)
        return asyncio.run(run())

    def test_fallback_recovers(self, recording):
        result = self._run(make_endpoint(body={'text': 'from fallback'}), recording)
        assert result == TranscriptionText(text='from fallback')

    def test_fallback_disabled(self, recording):
        requests = []
        result = self._run(make_endpoint(body={'text': 'x'}, requests=requests), recording,
                           fallback_enabled=False)
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert requests == []

    def test_fallback_failure_keeps_primary_kind(self, recording):
        result = self._run(make_endpoint(status=503, body={'error': 'down'}), recording)
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.message.endswith('(fallback: down)')

    def test_empty_transcription_not_retried(self, recording):
        requests = []

        async def run():
            async with TestServer(make_endpoint(body={})) as primary:
                async with TestServer(make_endpoint(body={'text': 'x'}, requests=requests)) as fallback:
                    client = TranscriptionClient(
                        str(primary.make_url('/transcribe')),
                        fallback_enabled=True,
                        fallback_url=str(fallback.make_url('/transcribe')),
                    )
                    return await client.transcribe(recording)

        result = asyncio.run(run())
        assert result.kind is ErrorKind.EMPTY_TRANSCRIPTION
        assert requests == []


@pytest.mark.unit
class TestInterpretResponse:

    def test_malformed_success_body(self):
        result = TranscriptionClient.interpret_response(200, 'not json')
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
        assert result.message.startswith('Malformed')

    def test_out_of_range_confidence_keeps_text(self):
        result = TranscriptionClient.interpret_response(
            200, '{"text": "clean the kitchen", "confidence": 1.2}')
        assert isinstance(result, TranscriptionText)
        assert result.text == "clean the kitchen"
        assert result.confidence is None

    def test_non_numeric_confidence_keeps_text(self):
        result = TranscriptionClient.interpret_response(200, '{"text": "hi", "confidence": "high"}')
        assert isinstance(result, TranscriptionText)
        assert result.confidence is None

    def test_valid_confidence_kept(self):
        result = TranscriptionClient.interpret_response(200, '{"text": "hi", "confidence": 0.9}')
        assert result.confidence == 0.9

    def test_non_string_text_is_malformed(self):
        result = TranscriptionClient.interpret_response(200, '{"text": ["hi"], "confidence": 7}')
        assert result.kind is ErrorKind.TRANSPORT_FAILURE
