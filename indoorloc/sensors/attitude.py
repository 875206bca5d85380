"""
Handset attitude tracking with stability-gated re-calibration.

The tracker maintains a unit quaternion q (world <- device) with a
gradient-descent complementary filter:

    q̇_ω  = 0.5 · q ⊗ [0, ω]                   gyroscope prediction
    ∇f   = Jᵀ(q) · f(q, â, m̂)                 accel (+ mag) objective
    q   ← normalize(q + (q̇_ω - β · ∇f/‖∇f‖) · Δt)

The accelerometer term pulls the estimated gravity direction R(q)ᵀ·e_z onto
the measured one, correcting roll and pitch. When the magnetometer is
present and trusted (confidence above ``mag_confidence_threshold``) the
magnetic term pulls the predicted field onto the measurement, correcting
yaw.

Alongside the filter the tracker watches for stable phases (low variance of
the accelerometer norm and low mean angular rate over a sliding window). A
phase that lasts long enough, with a trusted magnetometer and enough time
since the previous snapshot, freezes the current rotation as the body <->
device matrix pair used by transform_acceleration().

Frame Conventions:
    - D: Device frame; W: World frame (x magnetic north, z up)
    - A device lying flat measures (0, 0, +g); with q = identity the
      predicted gravity direction in device frame is (0, 0, 1)
"""

import logging
from typing import Optional

import numpy as np

from indoorloc.config import AttitudeConfig, SampleLimits
from indoorloc.coords.rotations import (
    IDENTITY_QUAT,
    ensure_unit,
    quat_derivative,
    quat_from_gravity,
    quat_normalize,
    quat_to_euler,
    quat_to_rotation_matrix,
)
from indoorloc.errors import ProjectionError
from indoorloc.sensors.environment import MagneticConfidenceTracker
from indoorloc.sensors.types import AttitudeStatus, RecalibrationSnapshot, Sample
from indoorloc.utils.buffers import TimeWindowBuffer
from indoorloc.utils.filters import variance

logger = logging.getLogger(__name__)


def madgwick_gradient(
    q: np.ndarray, accel_unit: np.ndarray, mag_unit: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Gradient Jᵀ·f of the filter objective at q.

    Gravity term (reference e_z in world frame):

        f_g = [2(q1q3 - q0q2) - ax,
               2(q0q1 + q2q3) - ay,
               2(0.5 - q1² - q2²) - az]

    Magnetic term, with the reference field b = (bx, 0, bz) obtained by
    rotating the measurement into the world frame and collapsing its
    horizontal part onto x:

        f_b = R(q)ᵀ · b - m̂

    Args:
        q: Current quaternion [q0, q1, q2, q3].
        accel_unit: Normalized accelerometer reading, shape (3,).
        mag_unit: Normalized magnetometer reading, or None for the
                  accelerometer-only objective.

    Returns:
        Gradient, shape (4,). Not normalized.
    """
    q0, q1, q2, q3 = q
    ax, ay, az = accel_unit

    f_g = np.array(
        [
            2.0 * (q1 * q3 - q0 * q2) - ax,
            2.0 * (q0 * q1 + q2 * q3) - ay,
            2.0 * (0.5 - q1 * q1 - q2 * q2) - az,
        ]
    )
    J_g = np.array(
        [
            [-2.0 * q2, 2.0 * q3, -2.0 * q0, 2.0 * q1],
            [2.0 * q1, 2.0 * q0, 2.0 * q3, 2.0 * q2],
            [0.0, -4.0 * q1, -4.0 * q2, 0.0],
        ]
    )
    grad = J_g.T @ f_g
    if mag_unit is None:
        return grad

    mx, my, mz = mag_unit
    h = quat_to_rotation_matrix(q) @ mag_unit
    bx = float(np.hypot(h[0], h[1]))
    bz = float(h[2])

    f_b = np.array(
        [
            2.0 * bx * (0.5 - q2 * q2 - q3 * q3) + 2.0 * bz * (q1 * q3 - q0 * q2) - mx,
            2.0 * bx * (q1 * q2 - q0 * q3) + 2.0 * bz * (q0 * q1 + q2 * q3) - my,
            2.0 * bx * (q0 * q2 + q1 * q3) + 2.0 * bz * (0.5 - q1 * q1 - q2 * q2) - mz,
        ]
    )
    J_b = np.array(
        [
            [-2.0 * bz * q2, 2.0 * bz * q3, -4.0 * bx * q2 - 2.0 * bz * q0, -4.0 * bx * q3 + 2.0 * bz * q1],
            [-2.0 * bx * q3 + 2.0 * bz * q1, 2.0 * bx * q2 + 2.0 * bz * q0, 2.0 * bx * q1 + 2.0 * bz * q3, -2.0 * bx * q0 + 2.0 * bz * q2],
            [2.0 * bx * q2, 2.0 * bx * q3 - 4.0 * bz * q1, 2.0 * bx * q0 - 4.0 * bz * q2, 2.0 * bx * q1],
        ]
    )
    return grad + J_b.T @ f_b


class AttitudeTracker:
    """
    Quaternion attitude filter with stability detection and body-frame
    snapshots.

    Args:
        config: Filter and gate settings.
        limits: Plausibility limits for incoming samples.

    Example:
        >>> tracker = AttitudeTracker()
        >>> tracker.update(Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0]))
        >>> tracker.q
        array([1., 0., 0., 0.])
    """

    def __init__(
        self,
        config: Optional[AttitudeConfig] = None,
        limits: Optional[SampleLimits] = None,
    ):
        self.config = config or AttitudeConfig()
        self.limits = limits or SampleLimits()
        self._build_state()

    def _build_state(self) -> None:
        cfg = self.config
        self._q = IDENTITY_QUAT.copy()
        self._initialized = False
        self._last_t: Optional[float] = None
        self._window = TimeWindowBuffer(cfg.stability_window_ms)
        self._mag = MagneticConfidenceTracker(
            history=cfg.mag_history,
            min_samples=cfg.mag_min_samples,
            norm_range=cfg.mag_norm_range,
            expected_norm=cfg.mag_expected_norm,
            variance_scale=cfg.mag_norm_threshold,
        )
        self._is_stable = False
        self._stable_since: Optional[float] = None
        self._acc_variance = 0.0
        self._gyro_magnitude = 0.0
        self._is_recalibrating = False
        self._snapshot: Optional[RecalibrationSnapshot] = None

    def configure(self, config: AttitudeConfig) -> None:
        """Swap settings; the stability window and mag history are rebuilt."""
        q, initialized, last_t, snapshot = self._q, self._initialized, self._last_t, self._snapshot
        self.config = config
        self._build_state()
        self._q, self._initialized, self._last_t, self._snapshot = q, initialized, last_t, snapshot

    def reset(self) -> None:
        """Return to identity attitude and clear every window and snapshot."""
        self._build_state()

    @property
    def q(self) -> np.ndarray:
        return self._q.copy()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def snapshot(self) -> Optional[RecalibrationSnapshot]:
        return self._snapshot

    @property
    def magnetic_confidence(self) -> float:
        return self._mag.confidence

    @property
    def stability_duration_ms(self) -> float:
        if not self._is_stable or self._stable_since is None or self._last_t is None:
            return 0.0
        return self._last_t - self._stable_since

    def euler(self) -> np.ndarray:
        """Current [roll, pitch, yaw] in radians."""
        return quat_to_euler(self._q)

    def update(self, sample: Sample) -> Optional[RecalibrationSnapshot]:
        """
        Advance the filter by one sample.

        Invalid samples and samples not newer than the previous one are
        ignored and leave the state untouched.

        Returns:
            The snapshot captured on this sample, or None.
        """
        if not sample.is_valid(self.limits):
            logger.debug("Attitude tracker ignoring invalid sample at t=%.1f", sample.t_ms)
            return None
        if self._last_t is not None and sample.t_ms <= self._last_t:
            logger.debug(
                "Attitude tracker ignoring stale sample at t=%.1f (last %.1f)",
                sample.t_ms, self._last_t,
            )
            return None

        cfg = self.config
        if self._last_t is None:
            dt_ms = cfg.default_dt_ms
        else:
            dt_ms = float(np.clip(sample.t_ms - self._last_t, cfg.min_dt_ms, cfg.max_dt_ms))
        self._last_t = sample.t_ms

        mag = sample.usable_mag
        mag_conf = self._mag.update(mag)
        use_mag = mag is not None and mag_conf > cfg.mag_confidence_threshold
        self._integrate(sample.accel, sample.gyro, mag if use_mag else None, dt_ms / 1000.0)
        self._initialized = True

        self._update_stability(sample)
        self._is_recalibrating = False
        if self._recalibration_due(sample.t_ms):
            return self._capture(sample.t_ms, automatic=True)
        return None

    def _integrate(
        self,
        accel: np.ndarray,
        gyro: np.ndarray,
        mag: Optional[np.ndarray],
        dt: float,
    ) -> None:
        q = self._q
        q_dot = quat_derivative(q, gyro)

        a_norm = np.linalg.norm(accel)
        if a_norm > 0.0:
            m_unit = None
            if mag is not None:
                m_norm = np.linalg.norm(mag)
                if m_norm > 0.0:
                    m_unit = mag / m_norm
            step = madgwick_gradient(q, accel / a_norm, m_unit)
            step_norm = np.linalg.norm(step)
            if step_norm > 0.0:
                q_dot = q_dot - self.config.beta * step / step_norm

        self._q = ensure_unit(quat_normalize(q + q_dot * dt))

    def _update_stability(self, sample: Sample) -> None:
        cfg = self.config
        gyro_norm = float(np.linalg.norm(sample.gyro))
        self._window.append(
            sample.t_ms, (float(np.linalg.norm(sample.accel)), gyro_norm, sample.accel)
        )
        entries = self._window.values()
        acc_norms = [e[0] for e in entries]
        gyro_norms = [e[1] for e in entries]
        self._acc_variance = variance(acc_norms)
        self._gyro_magnitude = float(np.mean(gyro_norms))

        stable = (
            len(entries) >= cfg.stability_min_samples
            and self._acc_variance < cfg.stability_acc_threshold
            and self._gyro_magnitude < cfg.stability_gyro_threshold
        )
        if stable and not self._is_stable:
            self._stable_since = sample.t_ms
            logger.debug("Device stable from t=%.1f", sample.t_ms)
        elif not stable:
            self._stable_since = None
        self._is_stable = stable

    def _recalibration_due(self, t_ms: float) -> bool:
        cfg = self.config
        if not (cfg.auto_recalibration_enabled and self._is_stable):
            return False
        if self.stability_duration_ms < cfg.stability_duration_ms:
            return False
        if not self._mag.confidence > cfg.mag_confidence_threshold:
            return False
        if self._snapshot is not None and t_ms - self._snapshot.t_ms < cfg.recalibration_interval_ms:
            return False
        return True

    def _capture(
        self, t_ms: float, automatic: bool, mean_gravity: Optional[np.ndarray] = None
    ) -> RecalibrationSnapshot:
        if mean_gravity is None:
            mean_gravity = np.mean([e[2] for e in self._window.values()], axis=0)
        device_to_body = quat_to_rotation_matrix(self._q)
        self._snapshot = RecalibrationSnapshot(
            device_to_body=device_to_body,
            body_to_device=device_to_body.T.copy(),
            t_ms=t_ms,
            automatic=automatic,
            mean_gravity=np.asarray(mean_gravity, dtype=float),
        )
        self._is_recalibrating = True
        logger.info(
            "%s re-calibration at t=%.1f (stable %.0f ms, mag confidence %.2f)",
            "Automatic" if automatic else "Forced",
            t_ms,
            self.stability_duration_ms,
            self._mag.confidence,
        )
        return self._snapshot

    def force_recalibration(
        self, accel, gyro, t_ms: Optional[float] = None
    ) -> Optional[RecalibrationSnapshot]:
        """
        Capture a snapshot from the given sample, bypassing every gate.

        Roll and pitch are re-levelled from the accelerometer reading; the
        current yaw is kept.

        Returns:
            The new snapshot, or None if the sample is not plausible.
        """
        if t_ms is None:
            t_ms = self._last_t if self._last_t is not None else 0.0
        try:
            sample = Sample(t_ms, accel, gyro)
        except ValueError:
            logger.warning("Forced re-calibration rejected: malformed sample")
            return None
        if not sample.is_valid(self.limits) or not np.linalg.norm(sample.accel) > 0.0:
            logger.warning("Forced re-calibration rejected: implausible sample")
            return None

        yaw = float(quat_to_euler(self._q)[2])
        self._q = quat_from_gravity(sample.accel, yaw=yaw)
        self._initialized = True
        return self._capture(t_ms, automatic=False, mean_gravity=sample.accel)

    def transform_acceleration(self, a) -> np.ndarray:
        """Rotate a device-frame acceleration into the body frame."""
        return self._to_body(a)

    def transform_gyroscope(self, g) -> np.ndarray:
        """Rotate a device-frame angular rate into the body frame."""
        return self._to_body(g)

    def _to_body(self, v) -> np.ndarray:
        v = np.asarray(v, dtype=float)
        if self._snapshot is None:
            return v
        return self._snapshot.device_to_body @ v

    def project_to_world(self, a) -> np.ndarray:
        """
        Rotate a device-frame vector into the world frame, v_W = R(q) · v_D.

        Raises:
            ProjectionError: If the tracker has not processed a sample yet,
                the quaternion is not finite, or the vector is malformed.
        """
        if not self._initialized:
            raise ProjectionError("Attitude tracker has no orientation yet")
        if not np.all(np.isfinite(self._q)):
            raise ProjectionError(f"Quaternion is not finite: {self._q}")
        v = np.asarray(a, dtype=float)
        if v.shape != (3,):
            raise ProjectionError(f"Expected a 3-vector, got shape {v.shape}")
        return quat_to_rotation_matrix(self._q) @ v

    def status(self) -> AttitudeStatus:
        return AttitudeStatus(
            q=self._q.copy(),
            is_stable=self._is_stable,
            stability_duration_ms=self.stability_duration_ms,
            magnetic_confidence=self._mag.confidence,
            acceleration_variance=self._acc_variance,
            gyro_magnitude=self._gyro_magnitude,
            is_recalibrating=self._is_recalibrating,
            last_recalibration_ms=self._snapshot.t_ms if self._snapshot else None,
            has_snapshot=self._snapshot is not None,
        )
