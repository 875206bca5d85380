"""
Step candidate detection from accelerometer windows.

Two detectors share the adaptive peak test of indoorloc.utils.filters:

Magnitude path (device-frame, orientation free):
    1. Remove gravity with a 15-sample trailing mean; samples without
       enough history fall back to scaling by g/‖a‖ when ‖a‖ ∈ (8, 12)
    2. Take the norm of the linear acceleration
    3. Detrend with a ~1 s moving average
    4. Strict 5-point peaks above mean + k·std (clamped to [0.12, 1.0]),
       20% above their immediate neighbours and above mean + 1.5·std

Vertical path (world-frame, needs a trustworthy attitude):
    1. Project the acceleration into the world frame and keep the up
       component, in g
    2. Detrend over a 2 s history
    3. Strict 3-point peaks above mean + 1.5·std clamped to the vertical
       peak bounds

Projection into the world frame can fail; the failure is returned as a
ProjectionFallback value instead of an exception so the caller can switch
paths explicitly.
"""

import logging
from typing import NamedTuple, Optional, Tuple, Union

import numpy as np

from indoorloc.config import PDRConfig, VerticalDetectionConfig
from indoorloc.coords.rotations import quat_is_identity
from indoorloc.sensors.types import AttitudeStatus, StepSource
from indoorloc.utils.buffers import TimeWindowBuffer
from indoorloc.utils.filters import PeakScan, detect_peaks, detrend, trailing_mean

logger = logging.getLogger(__name__)


class StepCandidate(NamedTuple):
    """A peak that may become a step once the timing and physiological gates pass."""

    t_ms: float
    peak: float
    threshold: float
    source: StepSource


class Projected(NamedTuple):
    vector: np.ndarray


class ProjectionFallback(NamedTuple):
    reason: str


ProjectionResult = Union[Projected, ProjectionFallback]


def project_acceleration(tracker, accel: np.ndarray) -> ProjectionResult:
    """
    Project a device-frame acceleration with the tracker's current attitude.

    Any failure of the tracker (not ready, non-finite attitude, malformed
    input) or a non-finite result is reported as ProjectionFallback.
    """
    try:
        world = tracker.project_to_world(accel)
    except (RuntimeError, ValueError, ArithmeticError) as exc:
        return ProjectionFallback(f"{type(exc).__name__}: {exc}")
    world = np.asarray(world, dtype=float)
    if world.shape != (3,) or not np.all(np.isfinite(world)):
        return ProjectionFallback(f"non-finite projection {world}")
    return Projected(world)


def remove_gravity(
    accels: np.ndarray,
    window: int = 15,
    min_samples: int = 10,
    gravity: float = 9.81,
) -> np.ndarray:
    """
    Linear acceleration for each row of a (N, 3) window.

    Row j with at least ``min_samples`` rows of history (j >= min_samples - 1)
    subtracts the trailing mean of rows max(0, j - window + 1) .. j. Earlier
    rows subtract a·g/‖a‖ when ‖a‖ lies in (8, 12) m/s² and are kept as-is
    otherwise.

    Args:
        accels: Device-frame accelerations, shape (N, 3), m/s².
        window: Gravity estimation window in samples.
        min_samples: History needed before the trailing mean is trusted.
        gravity: Gravity magnitude, m/s².

    Returns:
        Linear accelerations, shape (N, 3).
    """
    a = np.asarray(accels, dtype=float)
    if a.ndim != 2 or a.shape[1] != 3:
        raise ValueError(f"accels must have shape (N, 3), got {a.shape}")
    n = a.shape[0]
    if n == 0:
        return a.copy()

    out = a - trailing_mean(a, window)

    early = np.arange(n) < min_samples - 1
    if np.any(early):
        norms = np.linalg.norm(a[early], axis=1)
        scaled = a[early].copy()
        plausible = (norms > 8.0) & (norms < 12.0)
        scaled[plausible] -= a[early][plausible] * (gravity / norms[plausible])[:, None]
        out[early] = scaled
    return out


def magnitude_signal(
    accels: np.ndarray, config: Optional[PDRConfig] = None, gravity: float = 9.81
) -> np.ndarray:
    """Detrended linear-acceleration magnitude over a (N, 3) window."""
    cfg = config or PDRConfig()
    linear = remove_gravity(
        accels, window=cfg.gravity_window, min_samples=cfg.gravity_min_samples, gravity=gravity
    )
    return detrend(np.linalg.norm(linear, axis=1), window=cfg.detrend_window)


def magnitude_candidate(
    accels: np.ndarray,
    timestamps: np.ndarray,
    k: float,
    config: Optional[PDRConfig] = None,
    gravity: float = 9.81,
) -> Tuple[Optional[StepCandidate], PeakScan]:
    """
    Most recent magnitude peak in the window.

    Args:
        accels: Recent accelerations, shape (N, 3), oldest first.
        timestamps: Matching sample times, shape (N,), ms.
        k: Threshold multiplier for the current activity mode.
        config: PDR settings (windows, threshold bounds).
        gravity: Gravity magnitude, m/s².

    Returns:
        (candidate or None, full peak scan of the window).
    """
    cfg = config or PDRConfig()
    signal = magnitude_signal(accels, cfg, gravity)
    scan = detect_peaks(
        signal,
        k=k,
        bounds=cfg.peak_threshold_bounds,
        order=2,
        neighbor_ratio=1.2,
        strong_sigma=1.5,
    )
    if scan.count == 0:
        return None, scan
    i = int(scan.indices[-1])
    candidate = StepCandidate(
        t_ms=float(timestamps[i]),
        peak=float(signal[i]),
        threshold=scan.threshold,
        source=StepSource.MAGNITUDE,
    )
    return candidate, scan


def orientation_confidence(status: AttitudeStatus) -> float:
    """
    Trust in the attitude for world-frame projection, in [0, 1].

        0.5 base
        + 0.3 if the device is stable
        + 0.2 · magnetic confidence, when that confidence exceeds 0.5
        - min(0.3, 0.1 · acceleration variance) when the variance exceeds 1
        - min(0.2, 0.2 · gyro magnitude) when the rate exceeds 0.5 rad/s

    An identity quaternion means the tracker has not moved off its initial
    value and scores 0.
    """
    if quat_is_identity(np.asarray(status.q, dtype=float)):
        return 0.0
    confidence = 0.5
    if status.is_stable:
        confidence += 0.3
    if status.magnetic_confidence > 0.5:
        confidence += 0.2 * status.magnetic_confidence
    if status.acceleration_variance > 1.0:
        confidence -= min(0.3, 0.1 * status.acceleration_variance)
    if status.gyro_magnitude > 0.5:
        confidence -= min(0.2, 0.2 * status.gyro_magnitude)
    return float(np.clip(confidence, 0.0, 1.0))


class VerticalStepDetector:
    """
    Peak detector on the world-frame vertical acceleration.

    Holds a 2 s history of the up component (in g). Candidates come from
    the newest ``analysis_window`` samples once ``min_samples`` are present.
    """

    def __init__(self, config: Optional[VerticalDetectionConfig] = None, detrend_window: int = 25):
        self.config = config or VerticalDetectionConfig()
        self.detrend_window = detrend_window
        self._history = TimeWindowBuffer(self.config.history_ms)
        self.last_peak: Optional[float] = None

    def push(self, t_ms: float, up_g: float) -> None:
        self._history.append(t_ms, float(up_g))

    def candidate(self) -> Tuple[Optional[StepCandidate], Optional[PeakScan]]:
        cfg = self.config
        if len(self._history) < cfg.min_samples:
            return None, None
        values = np.asarray(self._history.values(cfg.analysis_window), dtype=float)
        times = self._history.timestamps(cfg.analysis_window)
        signal = detrend(values, window=self.detrend_window)
        scan = detect_peaks(
            signal,
            k=cfg.threshold_sigma,
            bounds=(cfg.min_vertical_peak, cfg.max_vertical_peak),
            order=1,
        )
        if scan.count == 0:
            return None, scan
        i = int(scan.indices[-1])
        peak = float(signal[i])
        if not cfg.min_vertical_peak <= peak <= cfg.max_vertical_peak:
            return None, scan
        self.last_peak = peak
        return StepCandidate(float(times[i]), peak, scan.threshold, StepSource.VERTICAL), scan

    def stats(self) -> dict:
        """Summary of the vertical history with a coarse signal-quality label."""
        values = np.asarray(self._history.values(), dtype=float)
        if values.size == 0:
            return {
                "samples": 0,
                "mean": 0.0,
                "std": 0.0,
                "min": 0.0,
                "max": 0.0,
                "range": 0.0,
                "signal_quality": "unknown",
            }
        std = float(np.std(values))
        if std < 0.5:
            quality = "good"
        elif std < 1.0:
            quality = "medium"
        else:
            quality = "poor"
        return {
            "samples": int(values.size),
            "mean": float(np.mean(values)),
            "std": std,
            "min": float(np.min(values)),
            "max": float(np.max(values)),
            "range": float(np.ptp(values)),
            "signal_quality": quality,
        }

    def reset(self) -> None:
        self._history.clear()
        self.last_peak = None

    def __len__(self) -> int:
        return len(self._history)
