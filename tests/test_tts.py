"""Tests for the synthesis client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from podcast_producer.constants import TTS_RATE
from podcast_producer.errors import ProviderError, ScriptValidationError
from podcast_producer.tts import SynthesisClient, get_provider, prepare_text


def _response(status=200, content=b"audio"):
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.content = content
    response.text = "error body"
    return response


def _client(*responses, keys=None):
    session = MagicMock()
    session.post.side_effect = list(responses)
    sleeps = []
    client = SynthesisClient(
        api_keys=keys or {"elevenlabs": "el-key", "openai": "oa-key"},
        session=session,
        sleep=sleeps.append,
    )
    return client, session, sleeps


def test_retry_on_503_then_success():
    """Two 503s then success: line succeeds after 1s and 2s backoff."""
    client, session, sleeps = _client(_response(503), _response(503), _response(200, b"mp3"))
    assert client.synthesize("Hi", "voice", None, "elevenlabs") == b"mp3"
    assert sleeps == [1.0, 2.0]
    assert session.post.call_count == 3


def test_retry_exhausted_raises_last_error():
    client, session, sleeps = _client(*[_response(429)] * 4)
    with pytest.raises(ProviderError) as exc:
        client.synthesize("Hi", "voice", None, "elevenlabs")
    assert exc.value.status_code == 429
    assert exc.value.retryable
    assert sleeps == [1.0, 2.0, 4.0]
    assert session.post.call_count == 4


def test_non_retryable_status_fails_immediately():
    client, session, sleeps = _client(_response(400))
    with pytest.raises(ProviderError) as exc:
        client.synthesize("Hi", "voice", None, "openai")
    assert exc.value.status_code == 400
    assert not exc.value.retryable
    assert sleeps == []
    assert session.post.call_count == 1


def test_timeout_is_retryable():
    client, session, sleeps = _client(requests.Timeout("slow"), _response(200, b"ok"))
    assert client.synthesize("Hi", "voice", None, "openai") == b"ok"
    assert sleeps == [1.0]


def test_connection_error_is_retryable():
    client, session, sleeps = _client(requests.ConnectionError("reset"), _response(200, b"ok"))
    assert client.synthesize("Hi", "voice", None, "elevenlabs") == b"ok"


def test_empty_audio_is_retried():
    client, session, sleeps = _client(_response(200, b""), _response(200, b"ok"))
    assert client.synthesize("Hi", "voice", None, "elevenlabs") == b"ok"
    assert sleeps == [1.0]


def test_request_timeouts_passed_to_session():
    client, session, _ = _client(_response())
    client.synthesize("Hi", "voice", None, "elevenlabs")
    assert session.post.call_args.kwargs["timeout"] == (10.0, 120.0)


def test_elevenlabs_keeps_emotion_tags_and_default_model():
    client, session, _ = _client(_response())
    client.synthesize("[cheerfully] Welcome to Synthszr", "v1", None, "elevenlabs")
    args, kwargs = session.post.call_args
    assert args[0].endswith("/text-to-speech/v1")
    assert kwargs["headers"]["xi-api-key"] == "el-key"
    assert kwargs["json"]["text"] == "[cheerfully] Welcome to Synthesizer"
    assert kwargs["json"]["model_id"] == "eleven_v3"


def test_openai_strips_emotion_tags():
    client, session, _ = _client(_response())
    client.synthesize("[cheerfully] Welcome [laughing] back", "nova", "tts-1-hd", "openai")
    body = session.post.call_args.kwargs["json"]
    assert body["input"] == "Welcome back"
    assert body["voice"] == "nova"
    assert body["model"] == "tts-1-hd"


def test_missing_api_key_is_fatal():
    client, session, sleeps = _client(_response(), keys={"openai": "k"})
    with pytest.raises(ProviderError, match="No API key"):
        client.synthesize("Hi", "voice", None, "elevenlabs")
    session.post.assert_not_called()


def test_unknown_provider_rejected():
    with pytest.raises(ScriptValidationError, match="Unknown TTS provider"):
        get_provider("nope")


def test_prepare_text_pronunciation_all_cases():
    text = prepare_text("Synthszr synthszr SYNTHSZR", supports_emotion_tags=True)
    assert text == "Synthesizer synthesizer SYNTHESIZER"


def _edge_factory(chunks):
    def factory(text, voice, **kwargs):
        mock = MagicMock()

        async def stream():
            for chunk in chunks:
                yield chunk
        mock.stream = stream
        return mock
    return factory


@patch("podcast_producer.tts.edge_tts.Communicate")
def test_edge_collects_audio_chunks(mock_comm):
    mock_comm.side_effect = _edge_factory([
        {"type": "audio", "data": b"ab"},
        {"type": "WordBoundary", "offset": 0},
        {"type": "audio", "data": b"cd"},
    ])
    client = SynthesisClient(sleep=lambda s: None)
    assert client.synthesize("[calmly] Hello", "en-US-GuyNeural", None, "edge") == b"abcd"
    mock_comm.assert_called_once_with("Hello", "en-US-GuyNeural", rate=TTS_RATE)


@patch("podcast_producer.tts.edge_tts.Communicate")
def test_edge_no_audio_is_retried(mock_comm):
    calls = []

    def factory(text, voice, **kwargs):
        calls.append(text)
        chunks = [] if len(calls) == 1 else [{"type": "audio", "data": b"x"}]
        return _edge_factory(chunks)(text, voice)

    mock_comm.side_effect = factory
    sleeps = []
    client = SynthesisClient(sleep=sleeps.append)
    assert client.synthesize("Hi", "en-US-GuyNeural", None, "edge") == b"x"
    assert len(calls) == 2
    assert sleeps == [1.0]
