"""
Environmental sensor models: magnetometer trust and barometric altitude.

This module implements:
    - magnetic_confidence: trust score for the magnetometer from the recent
      field-norm history
    - MagneticConfidenceTracker: rolling wrapper used by the attitude tracker
    - pressure_to_altitude: standard-atmosphere altitude from pressure in hPa
    - BarometricAltimeter: per-sample altitude change with a jump clamp

Indoor magnetic fields are distorted by steel structure and electronics. The
confidence score penalizes a field whose magnitude is far from the nominal
geomagnetic value and one that fluctuates between samples; readings outside
the plausible band collapse the score to zero.
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from indoorloc.utils.buffers import RingBuffer
from indoorloc.utils.filters import variance

logger = logging.getLogger(__name__)

SEA_LEVEL_PRESSURE_HPA = 1013.25


def magnetic_confidence(
    norms: Sequence[float],
    norm_range: Tuple[float, float] = (25.0, 65.0),
    expected_norm: float = 50.0,
    variance_scale: float = 5.0,
    min_samples: int = 10,
) -> Optional[float]:
    """
    Trust score for the magnetometer in [0, 1].

        stability = max(0, 1 - var(norms) / variance_scale)
        accuracy  = max(0, 1 - |mean(norms) - expected_norm| / expected_norm)
        confidence = min(1, stability · accuracy)

    The score is 0 when the most recent norm lies outside ``norm_range``.

    Args:
        norms: Recent field magnitudes in µT, oldest first.
        norm_range: Plausible geomagnetic band in µT.
        expected_norm: Nominal field magnitude in µT.
        variance_scale: Variance (µT²) at which stability reaches 0.
        min_samples: Minimum history length.

    Returns:
        Confidence score, or None if fewer than ``min_samples`` norms are
        available (the caller keeps its previous value).
    """
    x = np.asarray(norms, dtype=float)
    if x.size < min_samples:
        return None
    low, high = norm_range
    if not low <= x[-1] <= high:
        return 0.0
    stability = max(0.0, 1.0 - variance(x) / variance_scale)
    accuracy = max(0.0, 1.0 - abs(float(np.mean(x)) - expected_norm) / expected_norm)
    return float(min(stability * accuracy, 1.0))


class MagneticConfidenceTracker:
    """Rolling magnetometer confidence over the last ``history`` readings."""

    def __init__(
        self,
        history: int = 50,
        min_samples: int = 10,
        norm_range: Tuple[float, float] = (25.0, 65.0),
        expected_norm: float = 50.0,
        variance_scale: float = 5.0,
    ):
        self.min_samples = min_samples
        self.norm_range = norm_range
        self.expected_norm = expected_norm
        self.variance_scale = variance_scale
        self._norms: RingBuffer[float] = RingBuffer(history)
        self.confidence = 0.0

    def update(self, mag: Optional[np.ndarray]) -> float:
        """Add one reading (None keeps the current score) and return the score."""
        if mag is None:
            return self.confidence
        self._norms.append(float(np.linalg.norm(mag)))
        score = magnetic_confidence(
            self._norms.to_list(),
            norm_range=self.norm_range,
            expected_norm=self.expected_norm,
            variance_scale=self.variance_scale,
            min_samples=self.min_samples,
        )
        if score is not None:
            self.confidence = score
        return self.confidence

    def reset(self) -> None:
        self._norms.clear()
        self.confidence = 0.0

    def __len__(self) -> int:
        return len(self._norms)


def pressure_to_altitude(
    pressure_hpa: float, reference_hpa: float = SEA_LEVEL_PRESSURE_HPA
) -> float:
    """
    Altitude above the reference pressure level.

        h = 44330 · (1 - (p / p0)^0.1903)

    Args:
        pressure_hpa: Measured pressure in hPa.
        reference_hpa: Reference pressure in hPa (sea level by default).

    Returns:
        Altitude in meters.

    Example:
        >>> round(pressure_to_altitude(1013.25), 3)
        0.0
    """
    if pressure_hpa <= 0:
        raise ValueError(f"pressure_hpa must be positive, got {pressure_hpa}")
    if reference_hpa <= 0:
        raise ValueError(f"reference_hpa must be positive, got {reference_hpa}")
    return 44330.0 * (1.0 - (pressure_hpa / reference_hpa) ** 0.1903)


class BarometricAltimeter:
    """
    Tracks altitude changes from successive pressure readings.

    The first reading only establishes the reference. Each later reading
    contributes its altitude difference to the output, unless that
    difference is at least ``max_step_m`` (a pressure glitch or door slam),
    in which case it is ignored.
    """

    def __init__(self, max_step_m: float = 1.0):
        self.max_step_m = max_step_m
        self._last_altitude: Optional[float] = None

    def update(self, pressure_hpa: Optional[float]) -> float:
        """Return the accepted altitude change for this reading, meters."""
        if pressure_hpa is None:
            return 0.0
        altitude = pressure_to_altitude(pressure_hpa)
        if self._last_altitude is None:
            self._last_altitude = altitude
            return 0.0
        delta = altitude - self._last_altitude
        self._last_altitude = altitude
        if abs(delta) < self.max_step_m:
            return delta
        logger.debug("Ignoring barometric altitude jump of %.2f m", delta)
        return 0.0

    def reset(self) -> None:
        self._last_altitude = None
