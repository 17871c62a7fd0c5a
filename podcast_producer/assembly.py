"""Assemble dialogue segments into one panned, crossfaded, normalized episode."""

import io
import logging
import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from podcast_producer.constants import (
    CROSSFADE_SECONDS,
    INTERRUPTION_MAX_SECONDS,
    INTERRUPTION_OVERLAP_SECONDS,
    OUTPUT_BITRATE,
    OUTPUT_FORMAT,
    REACTION_MAX_SECONDS,
    REACTION_OVERLAP_SECONDS,
    SAMPLE_RATE,
    STEREO_PAN,
    TAIL_SECONDS,
)
from podcast_producer.effects import crossfade_join, normalize_peak, pan_gains
from podcast_producer.errors import AssemblyError
from podcast_producer.exporter import encode
from podcast_producer.models import DecodedDuration, Segment, Speaker
from podcast_producer.storage import audio_format_from_url, fetch_bytes

logger = logging.getLogger(__name__)


@dataclass
class MixOptions:
    sample_rate: int = SAMPLE_RATE
    pan: dict[str, float] = field(default_factory=lambda: dict(STEREO_PAN))
    tail_seconds: float = TAIL_SECONDS
    intro_url: str | None = None
    outro_url: str | None = None
    intro_crossfade_seconds: float = CROSSFADE_SECONDS
    outro_crossfade_seconds: float = CROSSFADE_SECONDS
    output_format: str = OUTPUT_FORMAT
    bitrate: str = OUTPUT_BITRATE
    title: str | None = None


@dataclass
class AssemblyResult:
    audio: bytes
    duration_seconds: float
    start_times: list[float]
    normalization_gain: float = 1.0


def decode_clip(data: bytes, audio_format: str, sample_rate: int = SAMPLE_RATE, channels: int = 1) -> np.ndarray:
    """Decode encoded audio to a float32 (channels, samples) array in [-1, 1]."""
    try:
        audio = AudioSegment.from_file(io.BytesIO(data), format=audio_format)
    except (CouldntDecodeError, OSError, ValueError) as e:
        raise AssemblyError(f"Could not decode {audio_format} audio ({len(data)} bytes): {e}") from e

    audio = audio.set_sample_width(2).set_frame_rate(sample_rate).set_channels(channels)
    samples = np.array(audio.get_array_of_samples(), dtype=np.float32) / 32768.0
    return samples.reshape((-1, channels)).T


def decoded_duration(clip: np.ndarray, sample_rate: int = SAMPLE_RATE) -> DecodedDuration:
    return DecodedDuration(clip.shape[-1] / sample_rate)


def overlap_for(duration: float) -> float:
    """Overlap (seconds) for a response after a speaker change.

    Under 1s reads as an interruption, under 2s as a short reaction;
    anything longer follows sequentially.
    """
    if duration < INTERRUPTION_MAX_SECONDS:
        return INTERRUPTION_OVERLAP_SECONDS
    if duration < REACTION_MAX_SECONDS:
        return REACTION_OVERLAP_SECONDS
    return 0.0


def compute_start_times(speakers: list[Speaker], durations: list[float]) -> tuple[list[float], float]:
    """Timing pass: start time per segment plus the latest end time.

    Segments anchor to the latest end seen so far, so a short interjection
    laid over a longer turn doesn't pull the next turn back into it.
    """
    start_times = []
    latest_end = 0.0
    for i, (speaker, duration) in enumerate(zip(speakers, durations)):
        if i == 0:
            start = 0.0
        elif speaker != speakers[i - 1]:
            overlap = overlap_for(duration)
            start = max(0.0, latest_end - overlap)
            if overlap:
                logger.debug("Segment %d: %.0fms overlap (%.2fs response)", i, overlap * 1000, duration)
        else:
            start = latest_end
        start_times.append(start)
        latest_end = max(latest_end, start + duration)
    return start_times, latest_end


def mix_to_stereo(
    clips: list[np.ndarray],
    speakers: list[Speaker],
    start_times: list[float],
    end_time: float,
    sample_rate: int = SAMPLE_RATE,
    pan: dict[str, float] | None = None,
    tail_seconds: float = TAIL_SECONDS,
) -> np.ndarray:
    """Mix mono clips into a (2, samples) buffer at their start times.

    Samples are added, not overwritten, so overlapping turns are heard
    as simultaneous speech.
    """
    pan = pan or STEREO_PAN
    total = int(math.ceil((end_time + tail_seconds) * sample_rate))
    output = np.zeros((2, total), dtype=np.float32)

    for clip, speaker, start in zip(clips, speakers, start_times):
        mono = clip[0] if clip.ndim == 2 else clip
        start_sample = int(round(start * sample_rate))
        n = min(len(mono), total - start_sample)
        if n <= 0:
            continue
        left_gain, right_gain = pan_gains(pan[speaker.value])
        output[0, start_sample:start_sample + n] += mono[:n] * left_gain
        output[1, start_sample:start_sample + n] += mono[:n] * right_gain

    return output


def _load_bookend(url: str, sample_rate: int, fetch: Callable[[str], bytes]) -> np.ndarray:
    data = fetch(url)
    clip = decode_clip(data, audio_format_from_url(url), sample_rate, channels=2)
    logger.info("Loaded %s: %.1fs", url, clip.shape[1] / sample_rate)
    return clip


def assemble(
    segments: list[Segment],
    options: MixOptions | None = None,
    fetch: Callable[[str], bytes] = fetch_bytes,
) -> AssemblyResult:
    """Timing → stereo mix → intro/outro crossfade → normalize → encode."""
    options = options or MixOptions()
    if not segments:
        raise AssemblyError("No segments to assemble")

    sr = options.sample_rate
    clips = [decode_clip(seg.audio, seg.audio_format, sr) for seg in segments]
    speakers = [seg.speaker for seg in segments]
    durations = [decoded_duration(clip, sr) for clip in clips]

    start_times, end_time = compute_start_times(speakers, durations)
    mixed = mix_to_stereo(clips, speakers, start_times, end_time, sr, options.pan, options.tail_seconds)
    logger.info("Mixed %d segments: %.2fs", len(segments), mixed.shape[1] / sr)

    if options.intro_url:
        intro = _load_bookend(options.intro_url, sr, fetch)
        crossfade = int(options.intro_crossfade_seconds * sr)
        # Dialogue shifts right by however much of the intro plays before it
        offset = (intro.shape[1] - min(crossfade, intro.shape[1], mixed.shape[1])) / sr
        start_times = [t + offset for t in start_times]
        mixed = crossfade_join(intro, mixed, crossfade)
    if options.outro_url:
        outro = _load_bookend(options.outro_url, sr, fetch)
        mixed = crossfade_join(mixed, outro, int(options.outro_crossfade_seconds * sr))

    mixed, gain = normalize_peak(mixed)
    audio = encode(mixed, sr, options.output_format, options.bitrate, options.title)

    return AssemblyResult(
        audio=audio,
        duration_seconds=round(mixed.shape[1] / sr, 1),
        start_times=start_times,
        normalization_gain=gain,
    )
