"""Unit tests for the transcription endpoint application."""

import asyncio
import base64

import pytest
from aiohttp.test_utils import TestClient, TestServer

from choretalk.transcription.base import AbstractTranscriptionBackend, ProviderError, ProviderTranscript
from choretalk.transcription.endpoint import create_app, decode_audio


class FakeBackend(AbstractTranscriptionBackend):
    """Provider returning a canned transcript or raising a canned error."""

    name = "fake"

    def __init__(self, transcript=None, error=None):
        super().__init__()
        self.transcript = transcript or ProviderTranscript(text="")
        self.error = error
        self.calls = []
        self.cleaned_up = False

    async def transcribe_audio(self, audio, mime_type):
        self.calls.append((audio, mime_type))
        if self.error is not None:
            raise self.error
        return self.transcript

    def cleanup(self):
        self.cleaned_up = True


def call_endpoint(backend, method='POST', json=None, data=None):
    """Send one request to the endpoint; returns (status, headers, body)."""

    async def run():
        async with TestClient(TestServer(create_app(backend))) as client:
            response = await client.request(method, '/transcribe', json=json, data=data)
            if response.content_type == 'application/json':
                body = await response.json()
            else:
                body = await response.text()
            return response.status, response.headers.copy(), body

    return asyncio.run(run())


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')


@pytest.mark.unit
class TestTranscriptionEndpoint:
    """Test cases for request validation, provider mapping and CORS."""

    def test_preflight(self):
        status, headers, body = call_endpoint(FakeBackend(), method='OPTIONS')
        assert status == 200
        assert body == 'ok'
        assert headers['Access-Control-Allow-Origin'] == '*'
        assert headers['Access-Control-Allow-Headers'] == 'authorization, x-client-info, apikey, content-type'

    def test_missing_audio(self):
        backend = FakeBackend()
        status, headers, body = call_endpoint(backend, json={'mimeType': 'audio/webm'})
        assert status == 400
        assert body == {'error': 'No audio data provided'}
        assert headers['Access-Control-Allow-Origin'] == '*'
        assert backend.calls == []

    def test_empty_audio(self):
        status, _, body = call_endpoint(FakeBackend(), json={'audio': ''})
        assert status == 400
        assert body['error'] == 'No audio data provided'

    def test_body_not_json(self):
        status, _, body = call_endpoint(FakeBackend(), data='audio=abc')
        assert status == 400
        assert 'error' in body

    def test_invalid_base64(self):
        status, _, body = call_endpoint(FakeBackend(), json={'audio': '!!not base64!!'})
        assert status == 400
        assert 'base64' in body['error']

    def test_invalid_pcm_parameters(self):
        backend = FakeBackend(ProviderTranscript(text='hi'))
        status, headers, body = call_endpoint(
            backend, json={'audio': b64(b'x' * 10), 'mimeType': 'audio/L16;rate=abc'})
        assert status == 400
        assert 'audio/L16' in body['error']
        assert headers['Access-Control-Allow-Origin'] == '*'
        assert backend.calls == []

    def test_success_with_confidence(self):
        backend = FakeBackend(ProviderTranscript(text='clean the bathroom sink', confidence=0.88))
        status, headers, body = call_endpoint(
            backend, json={'audio': b64(b'audio-bytes'), 'mimeType': 'audio/L16;rate=16000;channels=1'})

        assert status == 200
        assert body == {'text': 'clean the bathroom sink', 'confidence': 0.88}
        assert headers['Access-Control-Allow-Origin'] == '*'
        assert backend.calls == [(b'audio-bytes', 'audio/L16;rate=16000;channels=1')]

    def test_data_url_prefix_accepted(self):
        backend = FakeBackend(ProviderTranscript(text='hi'))
        call_endpoint(backend, json={'audio': 'data:audio/webm;base64,' + b64(b'webm-bytes'),
                                     'mimeType': 'audio/webm'})
        assert backend.calls == [(b'webm-bytes', 'audio/webm')]

    def test_default_mime_type(self):
        backend = FakeBackend(ProviderTranscript(text='hi'))
        call_endpoint(backend, json={'audio': b64(b'x' * 10)})
        assert backend.calls[0][1] == 'audio/webm'

    def test_no_speech_returns_empty_object(self):
        status, _, body = call_endpoint(FakeBackend(ProviderTranscript(text='')),
                                        json={'audio': b64(b'silence')})
        assert status == 200
        assert body == {}

    def test_out_of_range_confidence_dropped(self):
        backend = FakeBackend(ProviderTranscript(text='hi', confidence=3.0))
        status, _, body = call_endpoint(backend, json={'audio': b64(b'x')})
        assert status == 200
        assert body == {'text': 'hi'}

    def test_provider_error(self):
        backend = FakeBackend(error=ProviderError('OpenAI API error: 429 - rate limited'))
        status, headers, body = call_endpoint(backend, json={'audio': b64(b'x')})
        assert status == 502
        assert body['error'] == 'OpenAI API error: 429 - rate limited'
        assert headers['Access-Control-Allow-Origin'] == '*'

    def test_unexpected_error(self):
        status, _, body = call_endpoint(FakeBackend(error=KeyError('boom')),
                                        json={'audio': b64(b'x')})
        assert status == 500
        assert body['error']

    def test_backend_cleaned_up_on_shutdown(self):
        backend = FakeBackend()
        call_endpoint(backend, method='OPTIONS')
        assert backend.cleaned_up


@pytest.mark.unit
class TestDecodeAudio:

    def test_plain(self):
        assert decode_audio(b64(b'abc')) == b'abc'

    def test_data_url(self):
        assert decode_audio('data:audio/ogg;base64,' + b64(b'abc')) == b'abc'

    def test_invalid(self):
        with pytest.raises(ValueError):
            decode_audio('###')
