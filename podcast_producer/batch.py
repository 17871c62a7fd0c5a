"""Batched, bounded-concurrency synthesis with per-batch checkpoints."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable

from podcast_producer.constants import BATCH_PAUSE_SECONDS, TTS_BATCH_SIZE
from podcast_producer.errors import ClaimLostError, JobTimeoutError
from podcast_producer.models import EstimatedDuration, Job, ScriptLine, Segment, SegmentMeta
from podcast_producer.storage import CONTENT_TYPES
from podcast_producer.tts import SynthesisClient, get_provider
from podcast_producer.voices import resolve_voice

logger = logging.getLogger(__name__)

# (progress 0-100, current_line, segment urls so far)
Checkpoint = Callable[[int, int, list[str]], None]


@dataclass
class BatchResult:
    segments: list[Segment] = field(default_factory=list)
    segment_urls: list[str] = field(default_factory=list)
    segment_metadata: list[SegmentMeta] = field(default_factory=list)


def estimate_segment_duration(audio: bytes, bitrate_kbps: int) -> EstimatedDuration:
    """Duration from encoded byte length at a fixed bitrate (no decoding)."""
    return EstimatedDuration(len(audio) / (bitrate_kbps * 1024 / 8))


def _synthesize_line(index, line, job, client, storage, key_prefix, audio_format):
    """TTS + immediate upload for one line. Runs in a worker thread."""
    audio = client.synthesize(line.tagged_text, resolve_voice(job, line), job.model, job.provider)
    key = f"{key_prefix}-seg{index:03d}.{audio_format}"
    url = storage.put(key, audio, CONTENT_TYPES.get(audio_format, "application/octet-stream"))
    return audio, url


def _save_checkpoint(checkpoint: Checkpoint | None, progress: int, current_line: int, urls: list[str]) -> None:
    if checkpoint is None:
        return
    try:
        checkpoint(progress, current_line, urls)
    except ClaimLostError:
        raise
    except Exception:
        # Progress is diagnostic; a lost write must not abort synthesis
        logger.warning("Checkpoint write failed at line %d", current_line, exc_info=True)


def run_batches(
    lines: list[ScriptLine],
    job: Job,
    client: SynthesisClient,
    storage,
    key_prefix: str,
    checkpoint: Checkpoint | None = None,
    batch_size: int = TTS_BATCH_SIZE,
    pause: float = BATCH_PAUSE_SECONDS,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchResult:
    """Synthesize all lines in sequential batches of concurrent TTS calls.

    Each segment is uploaded as soon as it is synthesized. After every batch
    the checkpoint callback receives progress, the line count done and the
    URLs so far, and it returns before the next batch starts. Results are
    always in input order, whatever order the workers finish in. The first
    failure (by line index) in a batch propagates and ends the run.

    With a ``deadline``, a batch still running when it passes raises
    JobTimeoutError without waiting for the in-flight workers.
    """
    provider = get_provider(job.provider)
    total = len(lines)
    audio: list[bytes | None] = [None] * total
    urls: list[str | None] = [None] * total

    pool = ThreadPoolExecutor(max_workers=batch_size)
    try:
        for batch_start in range(0, total, batch_size):
            if deadline is not None and clock() > deadline:
                raise JobTimeoutError(
                    f"Processing budget exceeded before line {batch_start + 1}/{total}"
                )

            batch_end = min(batch_start + batch_size, total)
            started = time.monotonic()
            futures = [
                pool.submit(_synthesize_line, i, lines[i], job, client, storage,
                            key_prefix, provider.audio_format)
                for i in range(batch_start, batch_end)
            ]
            timeout = None if deadline is None else max(deadline - clock(), 0)
            _, pending = wait(futures, timeout=timeout)
            if pending:
                raise JobTimeoutError(
                    f"Processing budget exceeded during lines {batch_start + 1}-{batch_end}/{total}"
                )
            for i, future in zip(range(batch_start, batch_end), futures):
                audio[i], urls[i] = future.result()

            elapsed_ms = (time.monotonic() - started) * 1000
            logger.info(
                "Batch %d: lines %d-%d/%d in %.0fms",
                batch_start // batch_size + 1, batch_start + 1, batch_end, total, elapsed_ms,
            )

            progress = round(batch_end / total * 100)
            _save_checkpoint(checkpoint, progress, batch_end, list(urls[:batch_end]))

            if batch_end < total:
                sleep(pause)
    finally:
        # Workers still running past the deadline are abandoned, not joined
        pool.shutdown(wait=False, cancel_futures=True)

    result = BatchResult()
    for i, line in enumerate(lines):
        result.segments.append(Segment(
            audio=audio[i], speaker=line.speaker, text=line.text,
            audio_format=provider.audio_format,
        ))
        result.segment_urls.append(urls[i])
        result.segment_metadata.append(SegmentMeta(
            index=i,
            speaker=line.speaker,
            text=line.text,
            duration_estimate=estimate_segment_duration(audio[i], provider.bitrate_kbps),
        ))
    return result
