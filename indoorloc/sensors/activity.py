"""
Activity classification (stationary / walking / running).

Features are computed from the raw accelerometer window:
    - variance of the accelerometer norm
    - pitch of the newest sample, atan2(-ax, sqrt(ay² + az²)), in degrees
    - step frequency and peak amplitude of the latest magnitude peak scan

The decision is an ordered rule list; the first matching rule wins:

    1. variance < 0.2                           -> stationary
    2. amplitude > 1.0                          -> walking
    3. 30° < |pitch| < 60°                      -> walking (phone in pocket)
    4. frequency >= 0.1 Hz:
           freq >= 2.5 or (amp > 1.2 and freq > 2.0) -> running
           otherwise                                   -> walking
    5. variance > 0.7                           -> walking
    6. otherwise                                -> walking
"""

from typing import Optional, Sequence

import numpy as np

from indoorloc.errors import ConfigurationError
from indoorloc.sensors.types import ActivityFeatures, ActivityMode
from indoorloc.utils.filters import PeakScan, variance

STATIONARY_VARIANCE = 0.2
WALKING_AMPLITUDE = 1.0
POCKET_PITCH_DEG = (30.0, 60.0)
MIN_FREQUENCY_HZ = 0.1
RUNNING_FREQUENCY_HZ = 2.5
RUNNING_AMPLITUDE = 1.2
RUNNING_AMPLITUDE_FREQUENCY_HZ = 2.0
MOVING_VARIANCE = 0.7


def pitch_deg(accel: np.ndarray) -> float:
    """Device pitch from one accelerometer reading, degrees."""
    ax, ay, az = np.asarray(accel, dtype=float)
    return float(np.degrees(np.arctan2(-ax, np.hypot(ay, az))))


def compute_features(
    accels: np.ndarray,
    timestamps: Sequence[float],
    scan: Optional[PeakScan],
) -> ActivityFeatures:
    """
    Classifier features for a raw accelerometer window.

    Args:
        accels: Raw accelerations, shape (N, 3), oldest first.
        timestamps: Sample times for the window, ms.
        scan: Latest magnitude peak scan over the same window, or None.

    Returns:
        ActivityFeatures; frequency is the peak count divided by the time
        span of the window.
    """
    a = np.asarray(accels, dtype=float)
    if a.size == 0:
        return ActivityFeatures()
    t = np.asarray(timestamps, dtype=float)
    frequency = 0.0
    amplitude = 0.0
    if scan is not None and scan.count > 0:
        amplitude = scan.amplitude
        span_s = (t[-1] - t[0]) / 1000.0 if t.size > 1 else 0.0
        if span_s > 0.0:
            frequency = scan.count / span_s
    return ActivityFeatures(
        variance=variance(np.linalg.norm(a, axis=1)),
        frequency=frequency,
        amplitude=amplitude,
        pitch=pitch_deg(a[-1]),
    )


def classify_activity(features: ActivityFeatures) -> ActivityMode:
    """Apply the ordered decision rules to one feature set."""
    if features.variance < STATIONARY_VARIANCE:
        return ActivityMode.STATIONARY
    if features.amplitude > WALKING_AMPLITUDE:
        return ActivityMode.WALKING
    low, high = POCKET_PITCH_DEG
    if low < abs(features.pitch) < high:
        return ActivityMode.WALKING
    freq = features.frequency
    if freq >= MIN_FREQUENCY_HZ:
        if freq >= RUNNING_FREQUENCY_HZ or (
            features.amplitude > RUNNING_AMPLITUDE and freq > RUNNING_AMPLITUDE_FREQUENCY_HZ
        ):
            return ActivityMode.RUNNING
        return ActivityMode.WALKING
    if features.variance > MOVING_VARIANCE:
        return ActivityMode.WALKING
    return ActivityMode.WALKING


def parse_mode(mode) -> ActivityMode:
    """
    Coerce an ActivityMode or its string value.

    Raises:
        ConfigurationError: For any other value (a ValueError).
    """
    if isinstance(mode, ActivityMode):
        return mode
    try:
        return ActivityMode(str(mode).lower())
    except ValueError:
        valid = ", ".join(m.value for m in ActivityMode)
        raise ConfigurationError(f"Unknown activity mode {mode!r}; expected one of {valid}") from None
