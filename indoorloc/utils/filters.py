"""
Signal filters and peak detection for step analysis.

Pure functions on 1-D NumPy arrays:
    - variance: population variance used by every stability / activity test
    - trailing_mean: causal moving average (gravity estimation)
    - detrend: centred moving-average removal, rectified
    - adaptive_threshold: mean + k·std clamped to a band
    - detect_peaks: strict local maxima above an adaptive threshold, with
      optional prominence tests against immediate neighbours and against
      the window statistics

The peak detector relies on scipy.signal.argrelmax for the strict local
maximum test. Indices closer than ``order`` samples to either end of the
window are never reported, so every reported peak is confirmed by ``order``
samples on each side.
"""

from typing import NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.signal import argrelmax

ArrayLike = Union[Sequence[float], np.ndarray]


class PeakScan(NamedTuple):
    """Result of a peak scan over one analysis window."""

    indices: np.ndarray
    values: np.ndarray
    threshold: float

    @property
    def count(self) -> int:
        return int(self.indices.size)

    @property
    def amplitude(self) -> float:
        """Largest peak value, 0.0 when no peak was found."""
        return float(np.max(self.values)) if self.values.size else 0.0


def variance(values: ArrayLike) -> float:
    """Population variance (0.0 for an empty input)."""
    x = np.asarray(values, dtype=float)
    if x.size == 0:
        return 0.0
    return float(np.var(x))


def trailing_mean(values: np.ndarray, window: int) -> np.ndarray:
    """
    Causal moving average along axis 0.

    Row i of the result is the mean of rows max(0, i - window + 1) .. i, so
    the first rows average over fewer samples.

    Args:
        values: Array of shape (N,) or (N, D).
        window: Number of samples averaged, >= 1.

    Returns:
        Array with the same shape as values.
    """
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    x = np.asarray(values, dtype=float)
    n = x.shape[0]
    csum = np.concatenate([np.zeros((1,) + x.shape[1:]), np.cumsum(x, axis=0)], axis=0)
    end = np.arange(1, n + 1)
    start = np.maximum(0, end - window)
    counts = (end - start).reshape((-1,) + (1,) * (x.ndim - 1))
    return (csum[end] - csum[start]) / counts


def detrend(values: ArrayLike, window: int = 25, min_length: int = 10) -> np.ndarray:
    """
    Remove the slow component of a signal by subtracting a moving average.

    For each sample i the average is taken over
    ``[start, min(n, start + w))`` with ``start = max(0, i - w // 2)`` and
    ``w = min(window, n)``; the rectified residual ``|x_i - avg_i|`` is
    returned. Windows shorter than ``min_length`` are returned unchanged.

    Args:
        values: Signal samples, shape (N,).
        window: Moving-average length in samples (~1 s at 25 Hz).
        min_length: Minimum signal length for detrending.

    Returns:
        Detrended (non-negative) signal, shape (N,).

    Example:
        >>> detrend(np.full(12, 9.81))  # constant signal -> zeros
    """
    x = np.asarray(values, dtype=float)
    n = x.size
    if n < min_length:
        return x.copy()

    w = min(window, n)
    csum = np.concatenate(([0.0], np.cumsum(x)))
    start = np.maximum(0, np.arange(n) - w // 2)
    end = np.minimum(n, start + w)
    moving_avg = (csum[end] - csum[start]) / (end - start)
    return np.abs(x - moving_avg)


def adaptive_threshold(
    values: ArrayLike, k: float, bounds: Tuple[float, float]
) -> float:
    """Return mean + k·std of values, clamped to [bounds[0], bounds[1]]."""
    x = np.asarray(values, dtype=float)
    lower, upper = bounds
    return float(np.clip(np.mean(x) + k * np.std(x), lower, upper))


def detect_peaks(
    values: ArrayLike,
    k: float,
    bounds: Tuple[float, float],
    order: int = 2,
    neighbor_ratio: Optional[float] = None,
    strong_sigma: Optional[float] = None,
    min_length: int = 5,
) -> PeakScan:
    """
    Find strict local maxima above an adaptive threshold.

    A sample i is reported when all of the following hold:
        - it is strictly greater than the ``order`` samples on each side
        - value > adaptive_threshold(values, k, bounds)
        - if neighbor_ratio is given: value > neighbor_ratio · mean(x[i-1], x[i+1])
        - if strong_sigma is given: value > mean + strong_sigma · std

    Args:
        values: Signal window, shape (N,).
        k: Threshold multiplier on the window standard deviation.
        bounds: (lower, upper) clamp for the threshold.
        order: Half-width of the local-maximum test (2 -> 5-point peak).
        neighbor_ratio: Minimum ratio over the immediate neighbours' mean.
        strong_sigma: Minimum distance above the mean, in std units.
        min_length: Windows shorter than this yield no peaks.

    Returns:
        PeakScan with indices (ascending), values and the threshold used.
        For short windows the threshold is reported as bounds[0].
    """
    x = np.asarray(values, dtype=float)
    n = x.size
    if n < min_length:
        return PeakScan(np.array([], dtype=int), np.array([], dtype=float), float(bounds[0]))

    threshold = adaptive_threshold(x, k, bounds)
    mean = float(np.mean(x))
    std = float(np.std(x))

    idx = argrelmax(x, order=order)[0]
    idx = idx[(idx >= order) & (idx < n - order)]

    keep = x[idx] > threshold
    if neighbor_ratio is not None:
        keep &= x[idx] > neighbor_ratio * (x[idx - 1] + x[idx + 1]) / 2.0
    if strong_sigma is not None:
        keep &= x[idx] > mean + strong_sigma * std

    idx = idx[keep]
    return PeakScan(idx, x[idx], threshold)
