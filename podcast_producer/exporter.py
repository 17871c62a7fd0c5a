"""Encode mixed float audio as a 16-bit PCM WAV or an MP3."""

import io

import numpy as np
from pydub import AudioSegment

from podcast_producer.constants import OUTPUT_BITRATE, OUTPUT_FORMAT, SAMPLE_RATE


def to_pcm16(buffer: np.ndarray) -> np.ndarray:
    """Clamp a (channels, samples) float buffer to [-1, 1] and quantize.

    Returns interleaved int16 samples (L R L R ...).
    """
    clamped = np.clip(buffer, -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 32768.0, clamped * 32767.0)
    return scaled.T.astype(np.int16).reshape(-1)


def to_audio_segment(buffer: np.ndarray, sample_rate: int = SAMPLE_RATE) -> AudioSegment:
    return AudioSegment(
        data=to_pcm16(buffer).tobytes(),
        sample_width=2,
        frame_rate=sample_rate,
        channels=buffer.shape[0],
    )


def encode(
    buffer: np.ndarray,
    sample_rate: int = SAMPLE_RATE,
    audio_format: str = OUTPUT_FORMAT,
    bitrate: str = OUTPUT_BITRATE,
    title: str | None = None,
) -> bytes:
    """Encode a float buffer to container bytes.

    WAV is written natively; MP3 goes through ffmpeg and carries a title tag.
    """
    audio = to_audio_segment(buffer, sample_rate)
    out = io.BytesIO()
    if audio_format == "wav":
        audio.export(out, format="wav")
    else:
        tags = {"title": title} if title else None
        audio.export(out, format=audio_format, bitrate=bitrate, tags=tags)
    return out.getvalue()
