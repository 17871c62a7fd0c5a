"""Tests for DSP primitives."""

import numpy as np
import pytest

from podcast_producer.effects import crossfade_join, normalize_peak, pan_gains


@pytest.mark.parametrize("pan", [0.0, 0.1, 0.35, 0.5, 0.65, 0.9, 1.0])
def test_pan_is_power_preserving(pan):
    left, right = pan_gains(pan)
    assert left ** 2 + right ** 2 == pytest.approx(1.0)


def test_pan_extremes_and_bias():
    assert pan_gains(0.0) == pytest.approx((1.0, 0.0))
    assert pan_gains(1.0) == pytest.approx((0.0, 1.0), abs=1e-12)
    host_left, host_right = pan_gains(0.35)
    assert host_left > host_right > 0


def test_normalize_noop_when_not_clipping():
    buffer = np.array([[0.5, -1.0], [0.2, 0.9]], dtype=np.float32)
    result, gain = normalize_peak(buffer)
    assert gain == 1.0
    assert result is buffer


def test_normalize_scales_to_target_peak():
    buffer = np.array([[0.5, -2.0], [1.5, 0.0]], dtype=np.float32)
    result, gain = normalize_peak(buffer)
    assert gain == pytest.approx(0.95 / 2.0)
    assert np.max(np.abs(result)) == pytest.approx(0.95)
    assert result[0, 0] == pytest.approx(0.5 * 0.95 / 2.0)


def test_normalize_is_idempotent():
    once, _ = normalize_peak(np.array([[3.0, -1.0]], dtype=np.float32))
    twice, gain = normalize_peak(once)
    assert gain == 1.0
    assert np.max(np.abs(twice)) == pytest.approx(0.95)


def test_normalize_empty_buffer():
    result, gain = normalize_peak(np.zeros((2, 0), dtype=np.float32))
    assert gain == 1.0


def test_crossfade_length_and_ramp():
    first = np.ones((2, 10), dtype=np.float32)
    second = np.full((2, 8), 2.0, dtype=np.float32)
    result = crossfade_join(first, second, 4)
    assert result.shape == (2, 14)
    # Untouched head and tail
    assert np.all(result[:, :6] == 1.0)
    assert np.all(result[:, 10:] == 2.0)
    # Linear ramp: first fades out, second fades in
    expected = [1.0 * (1 - r) + 2.0 * r for r in (0.0, 0.25, 0.5, 0.75)]
    assert result[0, 6:10] == pytest.approx(expected)


def test_crossfade_zero_is_concatenation():
    first = np.ones((2, 3), dtype=np.float32)
    second = np.zeros((2, 2), dtype=np.float32)
    result = crossfade_join(first, second, 0)
    assert result.shape == (2, 5)
    assert np.all(result[:, :3] == 1.0)


def test_crossfade_clamped_to_shorter_clip():
    first = np.ones((2, 100), dtype=np.float32)
    second = np.ones((2, 10), dtype=np.float32)
    result = crossfade_join(first, second, 1000)
    assert result.shape == (2, 100)
