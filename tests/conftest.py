"""Shared fixtures for podcast producer tests."""

import io
import random

import numpy as np
import pytest
from pydub import AudioSegment

from podcast_producer.assembly import MixOptions
from podcast_producer.orchestrator import JobOrchestrator
from podcast_producer.storage import LocalObjectStorage
from podcast_producer.store import Database, JobStore, PersonalityStore, PostPodcastStore
from podcast_producer.tts import PROVIDERS, Provider, SynthesisClient


def _wav(seconds, freq=440.0, amplitude=0.5, sample_rate=44100, channels=1):
    t = np.arange(int(round(seconds * sample_rate))) / sample_rate
    tone = (amplitude * np.sin(2 * np.pi * freq * t) * 32767).astype(np.int16)
    data = np.repeat(tone, channels)  # interleave identical channels
    audio = AudioSegment(data=data.tobytes(), sample_width=2, frame_rate=sample_rate, channels=channels)
    out = io.BytesIO()
    audio.export(out, format="wav")
    return out.getvalue()


@pytest.fixture
def make_wav():
    """Factory for WAV-encoded sine tones (no ffmpeg needed)."""
    return _wav


@pytest.fixture
def db(tmp_path):
    return Database(str(tmp_path / "podcast.db"))


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "storage"))


@pytest.fixture
def fake_provider(monkeypatch):
    """Register a 'fake' provider that returns WAV tones.

    Returns a dict mapping line text to tone duration (default 1s); tests
    fill it to shape the dialogue timing. Requests are recorded in
    ``durations["_calls"]``.
    """
    durations = {"_calls": []}

    def request(client, text, voice_id, model):
        durations["_calls"].append((text, voice_id))
        return _wav(durations.get(text, 1.0))

    provider = Provider(
        name="fake",
        supports_emotion_tags=False,
        default_model=None,
        bitrate_kbps=706,
        request=request,
        audio_format="wav",
    )
    monkeypatch.setitem(PROVIDERS, "fake", provider)
    return durations


@pytest.fixture
def orchestrator(db, storage, fake_provider):
    return JobOrchestrator(
        jobs=JobStore(db),
        posts=PostPodcastStore(db),
        personalities=PersonalityStore(db),
        client=SynthesisClient(sleep=lambda s: None),
        storage=storage,
        mix_options=MixOptions(output_format="wav"),
        sleep=lambda s: None,
        rng=random.Random(0),
    )
