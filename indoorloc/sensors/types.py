"""
Data structures shared by the attitude tracker, the PDR engine and the
orientation buffer.

This module defines:
    - Sample: one timestamped accelerometer / gyroscope reading with optional
      magnetometer and barometer channels
    - Closed enumerations for activity mode, step source and detection method
    - AttitudeStatus and RecalibrationSnapshot published by the tracker
    - StepEvent, Pose, ActivityFeatures and NativeStepBatch records

Time Base Convention:
    All timestamps are float milliseconds on a monotonic clock supplied by
    the producer. Every timeout in the pipeline is evaluated against these
    timestamps, never against the wall clock, so a replay is deterministic.

Frame Conventions:
    - D: Device frame (handset physical axes)
    - B: Body frame, fixed to the user after a re-calibration snapshot
    - W: World frame, x towards magnetic north (horizontal), z up
    - Yaw is measured counter-clockwise from world x, in [-π, π]
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from indoorloc.config import SampleLimits


def _as_vec3(value, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {arr.shape}")
    return arr


class ActivityMode(str, Enum):
    """Activity classes reported by the classifier."""

    STATIONARY = "stationary"
    WALKING = "walking"
    RUNNING = "running"


class StepSource(str, Enum):
    """Where a step event came from."""

    MAGNITUDE = "magnitude"
    VERTICAL = "vertical"
    NATIVE = "native"


class DetectionMethod(str, Enum):
    """Detection path used for the most recent sample."""

    MAGNITUDE_ONLY = "magnitude_only"
    MAGNITUDE_DEFAULT = "magnitude_default"
    MAGNITUDE_FALLBACK = "magnitude_fallback"
    VERTICAL_PROJECTION = "vertical_projection"


@dataclass(frozen=True)
class Sample:
    """
    One sensor sample.

    Attributes:
        t_ms: Monotonic timestamp in milliseconds.
        accel: Specific force in device frame, shape (3,), m/s².
        gyro: Angular rate in device frame, shape (3,), rad/s.
        mag: Magnetic field in device frame, shape (3,), µT, or None.
        pressure_hpa: Barometric pressure in hPa, or None.

    Example:
        >>> s = Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0])
        >>> s.is_valid()
        True
    """

    t_ms: float
    accel: np.ndarray
    gyro: np.ndarray
    mag: Optional[np.ndarray] = None
    pressure_hpa: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "t_ms", float(self.t_ms))
        object.__setattr__(self, "accel", _as_vec3(self.accel, "accel"))
        object.__setattr__(self, "gyro", _as_vec3(self.gyro, "gyro"))
        if self.mag is not None:
            object.__setattr__(self, "mag", _as_vec3(self.mag, "mag"))
        if self.pressure_hpa is not None:
            object.__setattr__(self, "pressure_hpa", float(self.pressure_hpa))

    def is_valid(self, limits: Optional[SampleLimits] = None) -> bool:
        """
        Plausibility test applied before any state is touched.

        A sample is invalid when the timestamp or any inertial component is
        not finite, the accelerometer norm exceeds ``max_accel_g`` · g, or
        the gyroscope norm exceeds ``max_gyro_rad_s``. Non-finite
        magnetometer or barometer readings do not invalidate the sample;
        those channels are treated as missing instead.
        """
        limits = limits or SampleLimits()
        if not np.isfinite(self.t_ms):
            return False
        if not (np.all(np.isfinite(self.accel)) and np.all(np.isfinite(self.gyro))):
            return False
        if np.linalg.norm(self.accel) > limits.max_accel:
            return False
        return bool(np.linalg.norm(self.gyro) <= limits.max_gyro_rad_s)

    @property
    def usable_mag(self) -> Optional[np.ndarray]:
        """Magnetometer vector if present and finite, else None."""
        if self.mag is None or not np.all(np.isfinite(self.mag)):
            return None
        return self.mag

    @property
    def usable_pressure(self) -> Optional[float]:
        """Pressure if present, finite and positive, else None."""
        p = self.pressure_hpa
        if p is None or not np.isfinite(p) or p <= 0.0:
            return None
        return p


@dataclass(frozen=True)
class RecalibrationSnapshot:
    """
    Body <-> device rotation pair captured during a stable phase.

    Attributes:
        device_to_body: 3x3 matrix applied to device-frame vectors.
        body_to_device: Its transpose.
        t_ms: Timestamp of the sample that triggered the snapshot.
        automatic: False for a forced re-calibration.
        mean_gravity: Mean accelerometer vector over the stability window.
    """

    device_to_body: np.ndarray
    body_to_device: np.ndarray
    t_ms: float
    automatic: bool
    mean_gravity: np.ndarray


@dataclass(frozen=True)
class AttitudeStatus:
    """Read-only view of the attitude tracker state after one update."""

    q: np.ndarray
    is_stable: bool
    stability_duration_ms: float
    magnetic_confidence: float
    acceleration_variance: float
    gyro_magnitude: float
    is_recalibrating: bool
    last_recalibration_ms: Optional[float]
    has_snapshot: bool = False


@dataclass(frozen=True)
class ActivityFeatures:
    """Features used by the activity classifier (pitch in degrees)."""

    variance: float = 0.0
    frequency: float = 0.0
    amplitude: float = 0.0
    pitch: float = 0.0


@dataclass(frozen=True)
class StepEvent:
    """
    One validated step.

    Attributes:
        index: 1-based step count after this step.
        length_m: Step length used for the pose update.
        dx: World-x displacement, meters.
        dy: World-y displacement, meters.
        t_ms: Step timestamp (peak sample or interpolated native time).
        confidence: Heading confidence in [0, 1].
        source: Which detector produced the step.
        yaw: Heading used for the displacement, radians.
    """

    index: int
    length_m: float
    dx: float
    dy: float
    t_ms: float
    confidence: float
    source: StepSource
    yaw: float = 0.0


@dataclass(frozen=True)
class Pose:
    """Planar position plus altitude and heading (yaw in [-π, π])."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    confidence: float = 0.0


@dataclass(frozen=True)
class NativeStepBatch:
    """
    Step batch delivered by an OS pedometer.

    Attributes:
        step_count: Number of steps taken in the interval.
        step_length: Length of each step, meters.
        t_start_ms: Interval start.
        t_end_ms: Interval end.
        total_steps: Running total reported by the pedometer, if known.
    """

    step_count: int
    step_length: float
    t_start_ms: float
    t_end_ms: float
    total_steps: Optional[int] = None

    def __post_init__(self) -> None:
        if self.step_count < 0:
            raise ValueError(f"step_count must be non-negative, got {self.step_count}")
        if not self.step_length > 0:
            raise ValueError(f"step_length must be positive, got {self.step_length}")
        if not self.t_end_ms > self.t_start_ms:
            raise ValueError(
                f"t_end_ms ({self.t_end_ms}) must be after t_start_ms ({self.t_start_ms})"
            )

