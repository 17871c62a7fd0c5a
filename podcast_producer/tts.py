"""TTS synthesis via ElevenLabs, OpenAI or edge-tts with retry logic."""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

import edge_tts
import requests

from podcast_producer.constants import (
    PRONUNCIATIONS,
    TTS_CONNECT_TIMEOUT,
    TTS_RATE,
    TTS_READ_TIMEOUT,
    TTS_RETRY_BASE_DELAY,
    TTS_RETRY_COUNT,
    TTS_RETRYABLE_STATUS,
)
from podcast_producer.errors import ProviderError, ScriptValidationError

logger = logging.getLogger(__name__)

_EMOTION_TAG_RE = re.compile(r"\[\w+\]\s*")


@dataclass(frozen=True)
class Provider:
    name: str
    supports_emotion_tags: bool
    default_model: str | None
    bitrate_kbps: int              # encoded output bitrate, for duration estimates
    request: Callable              # (client, text, voice_id, model) -> bytes
    api_key_name: str | None = None
    audio_format: str = "mp3"


def prepare_text(text: str, supports_emotion_tags: bool) -> str:
    """Apply pronunciation fixes and strip emotion tags the provider can't read."""
    if not supports_emotion_tags:
        text = _EMOTION_TAG_RE.sub("", text).strip()
    for written, spoken in PRONUNCIATIONS.items():
        text = text.replace(written, spoken)
    return text


def _check_response(response: requests.Response, provider: str) -> bytes:
    if not response.ok:
        raise ProviderError(
            f"{provider} API error: {response.status_code} - {response.text[:200]}",
            provider=provider,
            status_code=response.status_code,
            retryable=response.status_code in TTS_RETRYABLE_STATUS,
        )
    return response.content


def _post(client: "SynthesisClient", provider: str, url: str, **kwargs) -> bytes:
    try:
        response = client.session.post(
            url, timeout=(TTS_CONNECT_TIMEOUT, TTS_READ_TIMEOUT), **kwargs
        )
    except (requests.Timeout, requests.ConnectionError) as e:
        raise ProviderError(f"{provider} transport error: {e}", provider=provider, retryable=True) from e
    return _check_response(response, provider)


def _request_elevenlabs(client, text: str, voice_id: str, model: str) -> bytes:
    return _post(
        client, "elevenlabs",
        f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}",
        headers={"xi-api-key": client.api_key("elevenlabs"), "Content-Type": "application/json"},
        json={"text": text, "model_id": model, "output_format": "mp3_44100_128"},
    )


def _request_openai(client, text: str, voice_id: str, model: str) -> bytes:
    return _post(
        client, "openai",
        "https://api.openai.com/v1/audio/speech",
        headers={"Authorization": f"Bearer {client.api_key('openai')}", "Content-Type": "application/json"},
        json={"model": model, "voice": voice_id, "input": text, "response_format": "mp3"},
    )


async def _collect_edge_audio(communicate: edge_tts.Communicate) -> bytes:
    chunks = []
    async for chunk in communicate.stream():
        if chunk["type"] == "audio":
            chunks.append(chunk["data"])
    return b"".join(chunks)


def _request_edge(client, text: str, voice_id: str, model: str | None) -> bytes:
    # Runs in a worker thread, so each call gets its own event loop
    communicate = edge_tts.Communicate(text, voice_id, rate=TTS_RATE)
    try:
        return asyncio.run(_collect_edge_audio(communicate))
    except (edge_tts.exceptions.NoAudioReceived, edge_tts.exceptions.WebSocketError,
            TimeoutError, ConnectionError) as e:
        raise ProviderError(f"edge transport error: {e}", provider="edge", retryable=True) from e


PROVIDERS = {
    "elevenlabs": Provider(
        name="elevenlabs",
        supports_emotion_tags=True,     # eleven_v3 reads [cheerfully] etc. inline
        default_model="eleven_v3",
        bitrate_kbps=128,
        request=_request_elevenlabs,
        api_key_name="elevenlabs",
    ),
    "openai": Provider(
        name="openai",
        supports_emotion_tags=False,
        default_model="tts-1",
        bitrate_kbps=128,
        request=_request_openai,
        api_key_name="openai",
    ),
    "edge": Provider(
        name="edge",
        supports_emotion_tags=False,
        default_model=None,
        bitrate_kbps=48,
        request=_request_edge,
    ),
}


def get_provider(name: str) -> Provider:
    try:
        return PROVIDERS[name]
    except KeyError:
        raise ScriptValidationError(
            f"Unknown TTS provider: {name} (choose from {', '.join(sorted(PROVIDERS))})"
        ) from None


class SynthesisClient:
    """Turns one line of text into encoded audio bytes.

    Retryable failures (429/500/502/503, timeouts, dropped connections,
    empty audio) are retried TTS_RETRY_COUNT times with exponential backoff
    (1s, 2s, 4s). Anything else, or the last retryable failure, propagates.
    Safe to share across worker threads.
    """

    def __init__(
        self,
        api_keys: dict[str, str] | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_keys = api_keys or {}
        self.session = session or requests.Session()
        self.sleep = sleep

    def api_key(self, name: str) -> str:
        key = self.api_keys.get(name)
        if not key:
            raise ProviderError(f"No API key configured for {name}", provider=name)
        return key

    def synthesize(self, text: str, voice_id: str, model: str | None, provider: str) -> bytes:
        spec = get_provider(provider)
        tts_text = prepare_text(text, spec.supports_emotion_tags)
        model = model or spec.default_model

        last_error = None
        for attempt in range(TTS_RETRY_COUNT + 1):
            try:
                audio = spec.request(self, tts_text, voice_id, model)
                if audio:
                    return audio
                # 0-byte audio: treat as a transient failure
                last_error = ProviderError(
                    f"{provider} returned empty audio for: {tts_text[:50]}...",
                    provider=provider, retryable=True,
                )
            except ProviderError as e:
                if not e.retryable:
                    raise
                last_error = e

            if attempt < TTS_RETRY_COUNT:
                delay = TTS_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "%s TTS (%s) failed (attempt %d/%d), retrying in %.1fs: %s",
                    provider, voice_id, attempt + 1, TTS_RETRY_COUNT + 1, delay, last_error,
                )
                self.sleep(delay)

        raise last_error
