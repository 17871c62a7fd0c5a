"""Audio effects: stereo panning, peak normalization and crossfades."""

import logging
import math

import numpy as np

from podcast_producer.constants import NORMALIZE_CEILING, NORMALIZE_TARGET

logger = logging.getLogger(__name__)


def pan_gains(pan: float) -> tuple[float, float]:
    """Constant-power (cos/sin) gains for a pan position in [0, 1].

    0.0 is full left, 1.0 full right. left² + right² == 1 for every pan,
    so perceived loudness doesn't dip in the middle like linear panning.
    """
    angle = pan * math.pi / 2
    return math.cos(angle), math.sin(angle)


def normalize_peak(
    buffer: np.ndarray,
    ceiling: float = NORMALIZE_CEILING,
    target: float = NORMALIZE_TARGET,
) -> tuple[np.ndarray, float]:
    """Scale the whole buffer to ``target`` peak, but only if it would clip.

    Returns (buffer, gain). Buffers whose peak is within ``ceiling`` are
    returned untouched with gain 1.0.
    """
    if buffer.size == 0:
        return buffer, 1.0
    peak = float(np.max(np.abs(buffer)))
    if peak <= ceiling:
        return buffer, 1.0
    gain = target / peak
    logger.info("Normalizing with gain %.3f (peak %.3f)", gain, peak)
    return buffer * gain, gain


def crossfade_join(first: np.ndarray, second: np.ndarray, crossfade_samples: int) -> np.ndarray:
    """Join two (channels, samples) buffers with a linear-gain crossfade.

    The last N samples of ``first`` fade out while the first N samples of
    ``second`` fade in, summed sample by sample. N is clamped to the length
    of the shorter clip; N == 0 is plain concatenation.
    """
    n1, n2 = first.shape[1], second.shape[1]
    overlap = max(0, min(crossfade_samples, n1, n2))
    if overlap == 0:
        return np.concatenate([first, second], axis=1)

    result = np.zeros((first.shape[0], n1 + n2 - overlap), dtype=np.float32)
    result[:, : n1 - overlap] = first[:, : n1 - overlap]

    ramp = np.arange(overlap, dtype=np.float32) / overlap
    result[:, n1 - overlap: n1] = first[:, n1 - overlap:] * (1.0 - ramp) + second[:, :overlap] * ramp

    result[:, n1:] = second[:, overlap:]
    return result
