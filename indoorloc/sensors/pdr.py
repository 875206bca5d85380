"""
Pedestrian Dead Reckoning (PDR) engine.

This module implements the step-and-heading PDR used by the pipeline:
    - Step detection on the world-frame vertical acceleration when the
      attitude is trustworthy, on the acceleration magnitude otherwise
    - Step timing gate and physiological guards (rate caps, gyro activity)
    - Activity classification with mode-change reporting
    - Adaptive step length, p_k = p_{k-1} + L·[cos ψ, sin ψ]
    - Gyro yaw integration, ZUPT velocity damping, barometric altitude
    - Advisory sampling rate

PedestrianDeadReckoning is a per-sample state machine: process() consumes
one sample (and the attitude status published for it) and returns a PDRUpdate
describing what changed. The caller turns that into events.

Frame Conventions:
    - World frame x towards magnetic north, z up
    - Yaw ψ counter-clockwise from world x, wrapped to [-π, π]
"""

import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

from indoorloc.config import PDRConfig, SampleLimits
from indoorloc.sensors.activity import classify_activity, compute_features, parse_mode
from indoorloc.sensors.constraints import PhysiologicalGuard, ZuptDetector
from indoorloc.sensors.environment import BarometricAltimeter
from indoorloc.sensors.step_detection import (
    Projected,
    StepCandidate,
    VerticalStepDetector,
    magnitude_candidate,
    orientation_confidence,
    project_acceleration,
)
from indoorloc.sensors.types import (
    ActivityFeatures,
    ActivityMode,
    AttitudeStatus,
    DetectionMethod,
    Pose,
    Sample,
    StepEvent,
    StepSource,
)
from indoorloc.utils.angles import wrap_angle
from indoorloc.utils.buffers import RingBuffer, TimeWindowBuffer
from indoorloc.utils.filters import detect_peaks, detrend
from indoorloc.utils.log import RateLimitedLogger

logger = logging.getLogger(__name__)

# Yaw integration never spans more than this between two samples
MAX_YAW_DT_S = 0.1

# Hard cap on the detection history in case timestamps stall
MAX_HISTORY_ENTRIES = 512


def threshold_multiplier(mode: ActivityMode, step_count: int) -> float:
    """k in mean + k·std for magnitude peaks; 10% lower during warm-up."""
    if mode == ActivityMode.WALKING:
        k = 1.1
    else:
        k = 1.2
    if step_count < 10:
        k *= 0.9
    return k


def amplitude_factor(amplitude: float) -> float:
    """Map a peak amplitude in [0.5, 3.0] m/s² linearly onto [0.7, 1.1]."""
    a = float(np.clip(amplitude, 0.5, 3.0))
    return 0.7 + (a - 0.5) * 0.4 / 2.5


def target_step_length(
    base_length: float, amplitude: float, mode: ActivityMode, running_factor: float = 1.2
) -> float:
    """
    Instantaneous step length before smoothing.

        L* = base · amplitude_factor(amplitude) · mode_factor

    where base is H·r when the user height is known and the default step
    length otherwise, and mode_factor is ``running_factor`` when running.
    """
    mode_factor = running_factor if mode == ActivityMode.RUNNING else 1.0
    return base_length * amplitude_factor(amplitude) * mode_factor


def smooth_step_length(
    current: float, target: float, alpha: float, bounds: Sequence[float] = (0.3, 1.2)
) -> float:
    """Exponential smoothing of the step length, clamped to bounds."""
    low, high = bounds
    return float(np.clip(current + alpha * (target - current), low, high))


def pdr_step_update(p_prev_xy: np.ndarray, step_len: float, heading_rad: float) -> np.ndarray:
    """
    Advance a 2D position by one step.

        p_k = p_{k-1} + L · [cos(ψ), sin(ψ)]

    Args:
        p_prev_xy: Position before the step, shape (2,), meters.
        step_len: Step length L, meters.
        heading_rad: Yaw ψ, radians.

    Returns:
        Position after the step, shape (2,).
    """
    p_prev_xy = np.asarray(p_prev_xy, dtype=float)
    if p_prev_xy.shape != (2,):
        raise ValueError(f"p_prev_xy must have shape (2,), got {p_prev_xy.shape}")
    if step_len < 0:
        raise ValueError(f"step_len must be non-negative, got {step_len}")
    return p_prev_xy + step_len * np.array([np.cos(heading_rad), np.sin(heading_rad)])


def integrate_gyro_heading(
    heading_prev: float, omega_z: float, dt: float, max_rate: float = 10.0
) -> float:
    """ψ_k = wrap(ψ_{k-1} + clip(ω_z, ±max_rate) · Δt)."""
    if dt < 0:
        raise ValueError(f"dt must be non-negative, got {dt}")
    rate = float(np.clip(omega_z, -max_rate, max_rate))
    return wrap_angle(heading_prev + rate * dt)


class PDRUpdate(NamedTuple):
    """What changed while processing one sample."""

    step: Optional[StepEvent]
    mode_changed: bool
    previous_mode: ActivityMode
    mode: ActivityMode
    features: ActivityFeatures
    pose_changed: bool


class PedestrianDeadReckoning:
    """
    Step-and-heading dead reckoning over a live sample stream.

    Args:
        config: PDR settings.
        limits: Sample plausibility limits (gravity constant).
        log_interval_ms: Minimum spacing of repeated warnings.

    Example:
        >>> pdr = PedestrianDeadReckoning()
        >>> pdr.initialize(user_height=1.75)
        >>> update = pdr.process(Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0]))
        >>> pdr.step_count
        0
    """

    def __init__(
        self,
        config: Optional[PDRConfig] = None,
        limits: Optional[SampleLimits] = None,
        log_interval_ms: float = 5000.0,
    ):
        self.config = config or PDRConfig()
        self.limits = limits or SampleLimits()
        self._warn = RateLimitedLogger(logger, log_interval_ms)
        self._tracker = None
        self._manual_mode: Optional[ActivityMode] = None
        self.user_height: Optional[float] = self.config.user_height
        self._build_buffers()
        self.reset()

    def _build_buffers(self) -> None:
        cfg = self.config
        size = cfg.buffer_size
        self._acc: RingBuffer[np.ndarray] = RingBuffer(size)
        self._acc_t: RingBuffer[float] = RingBuffer(size)
        self._gyro: RingBuffer[np.ndarray] = RingBuffer(size)
        self._mag: RingBuffer[np.ndarray] = RingBuffer(size)
        self._history = TimeWindowBuffer(cfg.history_ms, max_entries=MAX_HISTORY_ENTRIES)
        self._vertical = VerticalStepDetector(cfg.vertical, detrend_window=cfg.detrend_window)
        self._guard = PhysiologicalGuard(cfg.physiological)
        self._zupt = ZuptDetector(cfg.zupt_threshold, cfg.zupt_duration_ms, cfg.zupt_window)
        self._altimeter = BarometricAltimeter(cfg.max_altitude_step_m)

    # ------------------------------------------------------------------
    # Configuration and lifecycle
    # ------------------------------------------------------------------

    def configure(self, config: PDRConfig) -> None:
        """Swap settings; detection windows restart, pose and counters are kept."""
        self.config = config
        if config.user_height is not None:
            self.user_height = config.user_height
        self._build_buffers()
        self._last_candidate_t = None

    def initialize(self, user_height: Optional[float] = None) -> None:
        """Set the user height and reseed the step length from it."""
        if user_height is not None:
            if not user_height > 0:
                raise ValueError(f"user_height must be positive, got {user_height}")
            self.user_height = float(user_height)
        self.step_length = self._seed_length()

    def _seed_length(self) -> float:
        if self.user_height is None:
            return self.config.default_step_length
        low, high = self.config.step_length_bounds
        return float(np.clip(self.user_height * self.config.height_ratio, low, high))

    def reset(self, position: Optional[Sequence[float]] = None, yaw: Optional[float] = None) -> None:
        """Zero counters, clear every buffer and place the pose."""
        for buf in (self._acc, self._acc_t, self._gyro, self._mag, self._history):
            buf.clear()
        self._vertical.reset()
        self._guard.reset()
        self._zupt.reset()
        self._altimeter.reset()
        self._warn.reset()

        pos = np.zeros(3)
        if position is not None:
            given = np.asarray(position, dtype=float).ravel()[:3]
            pos[: given.size] = given
        self.position = pos
        self.yaw = wrap_angle(yaw) if yaw is not None else 0.0
        self.pitch = 0.0
        self.roll = 0.0
        self.velocity = np.zeros(3)

        self.step_count = 0
        self.step_length = self._seed_length()
        self.mode = self._manual_mode or ActivityMode.WALKING
        self.features = ActivityFeatures()
        self.sample_rate = self.config.base_sample_rate

        self._last_t: Optional[float] = None
        self._last_step_t: Optional[float] = None
        self._last_candidate_t: Optional[float] = None
        self._fallback_since: Optional[float] = None
        self.last_detection_path: Optional[DetectionMethod] = None
        self.last_orientation_confidence = 0.0
        self.last_step: Optional[StepEvent] = None

    def set_attitude_tracker(self, tracker) -> None:
        """Attach the tracker used for vertical projection (None detaches it)."""
        self._tracker = tracker
        self._fallback_since = None

    def set_manual_mode(self, mode) -> bool:
        """
        Force the activity mode and suspend the classifier.

        Returns:
            True if the mode changed.

        Raises:
            ConfigurationError: If mode is not an activity mode.
        """
        mode = parse_mode(mode)
        self._manual_mode = mode
        return self._set_mode(mode)

    def set_auto_classification(self, enabled: bool = True) -> None:
        """Re-enable (or suspend at the current mode) automatic classification."""
        self._manual_mode = None if enabled else self.mode

    @property
    def auto_classification(self) -> bool:
        return self._manual_mode is None

    def set_yaw(self, yaw: float) -> None:
        """Replace the heading, e.g. with an externally stabilized one."""
        self.yaw = wrap_angle(yaw)

    def _set_mode(self, mode: ActivityMode) -> bool:
        if mode == self.mode:
            return False
        logger.debug("Activity mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self.velocity = np.zeros(3)
        return True

    # ------------------------------------------------------------------
    # Per-sample processing
    # ------------------------------------------------------------------

    def process(self, sample: Sample, status: Optional[AttitudeStatus] = None) -> PDRUpdate:
        """
        Consume one sample.

        Args:
            sample: A validated, time-ordered sample.
            status: Attitude status for this sample; read from the attached
                    tracker when omitted.

        Returns:
            PDRUpdate with the step (if any) and the mode transition.
        """
        cfg = self.config
        t = sample.t_ms
        accel = sample.accel
        gyro = sample.gyro
        g = self.limits.gravity

        self._acc.append(accel)
        self._acc_t.append(t)
        self._gyro.append(gyro)
        if sample.usable_mag is not None:
            self._mag.append(sample.usable_mag)
        self._history.append(t, accel)
        self._guard.push_gyro(float(np.linalg.norm(gyro)))

        previous_mode = self.mode
        mode_changed = self._classify()
        self._adapt_sample_rate()

        step = None
        if len(self._history) >= cfg.min_history_samples:
            if status is None and self._tracker is not None:
                status = self._tracker.status()
            step = self._detect_step(sample, status)

        if self._zupt.update(t, float(np.linalg.norm(accel))):
            self.velocity = self.velocity * cfg.zupt_damping

        if self._last_t is not None:
            dt = min(max(t - self._last_t, 0.0) / 1000.0, MAX_YAW_DT_S)
            self.yaw = integrate_gyro_heading(self.yaw, gyro[2], dt, cfg.max_angular_rate)
        self._last_t = t

        dz = self._altimeter.update(sample.usable_pressure)
        if dz != 0.0:
            self.position[2] += dz

        ax, ay, az = accel
        self.pitch = float(np.arctan2(-ax, np.hypot(ay, az)))
        self.roll = float(np.arctan2(ay, az))

        return PDRUpdate(
            step=step,
            mode_changed=mode_changed,
            previous_mode=previous_mode,
            mode=self.mode,
            features=self.features,
            pose_changed=step is not None or dz != 0.0,
        )

    def _classify(self) -> bool:
        cfg = self.config
        n = cfg.step_detection_window
        if len(self._acc) < n:
            return False
        accels = np.array(self._acc.last(n))
        times = self._acc_t.last(n)
        norms = np.linalg.norm(accels, axis=1)
        scan = None
        if norms.size >= 10:
            scan = detect_peaks(
                detrend(norms, window=cfg.detrend_window),
                k=threshold_multiplier(self.mode, self.step_count),
                bounds=cfg.peak_threshold_bounds,
                order=2,
                neighbor_ratio=1.2,
                strong_sigma=1.5,
            )
        self.features = compute_features(accels, times, scan)
        if self._manual_mode is not None:
            return False
        return self._set_mode(classify_activity(self.features))

    def _adapt_sample_rate(self) -> None:
        cfg = self.config
        recent = np.array(self._acc.last(5))
        dynamic = np.abs(np.linalg.norm(recent, axis=1) - self.limits.gravity)
        if dynamic.max() > cfg.motion_threshold:
            self.sample_rate = cfg.high_sample_rate
        else:
            self.sample_rate = cfg.base_sample_rate

    def _fallback_active(self, t_ms: float) -> bool:
        if self._fallback_since is None:
            return False
        if t_ms - self._fallback_since >= self.config.vertical.fallback_lockout_ms:
            self._fallback_since = None
            logger.info("Retrying vertical step detection at t=%.1f", t_ms)
            return False
        return True

    def _detect_step(
        self, sample: Sample, status: Optional[AttitudeStatus]
    ) -> Optional[StepEvent]:
        vcfg = self.config.vertical
        t = sample.t_ms

        if not vcfg.enabled or self._tracker is None:
            method = DetectionMethod.MAGNITUDE_ONLY
        elif self._fallback_active(t):
            method = DetectionMethod.MAGNITUDE_FALLBACK
        else:
            confidence = orientation_confidence(status) if status is not None else 0.0
            self.last_orientation_confidence = confidence
            if confidence < vcfg.orientation_confidence_threshold:
                method = DetectionMethod.MAGNITUDE_DEFAULT
            else:
                result = project_acceleration(self._tracker, sample.accel)
                if isinstance(result, Projected):
                    self.last_detection_path = DetectionMethod.VERTICAL_PROJECTION
                    self._vertical.push(t, result.vector[2] / self.limits.gravity)
                    candidate, _ = self._vertical.candidate()
                    return self._evaluate(candidate, confidence)
                self._fallback_since = t
                self._warn.warning(
                    "projection", t,
                    "Vertical projection failed at t=%.1f (%s); magnitude detection for %.0f ms",
                    t, result.reason, vcfg.fallback_lockout_ms,
                )
                if not vcfg.fallback_to_magnitude:
                    self.last_detection_path = DetectionMethod.MAGNITUDE_FALLBACK
                    return None
                method = DetectionMethod.MAGNITUDE_FALLBACK

        self.last_detection_path = method
        cfg = self.config
        items = self._history.items()[-cfg.magnitude_window:]
        accels = np.array([a for _, a in items])
        times = np.array([ts for ts, _ in items])
        candidate, _ = magnitude_candidate(
            accels,
            times,
            k=threshold_multiplier(self.mode, self.step_count),
            config=cfg,
            gravity=self.limits.gravity,
        )
        if candidate is None:
            return None
        confidence = float(np.clip((candidate.peak - candidate.threshold) / candidate.threshold, 0.0, 1.0))
        return self._evaluate(candidate, confidence)

    def _min_interval(self, source: StepSource) -> float:
        running = self.mode == ActivityMode.RUNNING
        if source == StepSource.VERTICAL:
            vcfg = self.config.vertical
            return vcfg.min_step_interval_running_ms if running else vcfg.min_step_interval_walking_ms
        cfg = self.config
        return cfg.min_step_interval_running_ms if running else cfg.min_step_interval_walking_ms

    def _evaluate(self, candidate: Optional[StepCandidate], confidence: float) -> Optional[StepEvent]:
        if candidate is None:
            return None
        if self._last_candidate_t is not None and candidate.t_ms <= self._last_candidate_t:
            return None
        self._last_candidate_t = candidate.t_ms

        cfg = self.config
        if candidate.source == StepSource.MAGNITUDE:
            min_peak = cfg.min_peak_running if self.mode == ActivityMode.RUNNING else cfg.min_peak_walking
            if candidate.peak < min_peak:
                return None
        if (
            self._last_step_t is not None
            and candidate.t_ms - self._last_step_t < self._min_interval(candidate.source)
        ):
            logger.debug("Peak at t=%.1f inside the minimum step interval", candidate.t_ms)
            return None
        if self._guard.check(candidate.t_ms, self.mode, self.step_count) is not None:
            return None

        amplitude = candidate.peak
        if candidate.source == StepSource.VERTICAL:
            amplitude *= self.limits.gravity
        base = self.user_height * cfg.height_ratio if self.user_height else cfg.default_step_length
        target = target_step_length(base, amplitude, self.mode, cfg.running_length_factor)
        self.step_length = smooth_step_length(
            self.step_length, target, cfg.step_length_alpha, cfg.step_length_bounds
        )
        self._guard.record(candidate.t_ms)
        self._last_step_t = candidate.t_ms
        return self._advance(candidate.t_ms, self.step_length, self.yaw, confidence, candidate.source)

    def _advance(
        self, t_ms: float, length: float, yaw: float, confidence: float, source: StepSource
    ) -> StepEvent:
        self.position[:2] = pdr_step_update(self.position[:2], length, yaw)
        self.step_count += 1
        step = StepEvent(
            index=self.step_count,
            length_m=float(length),
            dx=float(length * np.cos(yaw)),
            dy=float(length * np.sin(yaw)),
            t_ms=float(t_ms),
            confidence=float(confidence),
            source=source,
            yaw=float(yaw),
        )
        self.last_step = step
        logger.debug(
            "Step %d at t=%.1f (%s, L=%.3f m, yaw=%.1f deg)",
            step.index, t_ms, source.value, length, np.degrees(yaw),
        )
        return step

    def apply_external_step(
        self, t_ms: float, length: float, yaw: float, confidence: float = 1.0
    ) -> StepEvent:
        """Count a step reported by a native pedometer and advance the pose."""
        return self._advance(t_ms, length, wrap_angle(yaw), confidence, StepSource.NATIVE)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def total_distance(self) -> float:
        return self.step_count * self.step_length

    def pose(self) -> Pose:
        return Pose(
            x=float(self.position[0]),
            y=float(self.position[1]),
            z=float(self.position[2]),
            yaw=float(self.yaw),
            confidence=float(self.last_step.confidence) if self.last_step else 0.0,
        )

    def state(self) -> dict:
        """Snapshot of position, heading, activity and detector metrics."""
        fallback_active = self._fallback_since is not None
        return {
            "position": self.position.copy(),
            "orientation": {"yaw": self.yaw, "pitch": self.pitch, "roll": self.roll},
            "velocity": self.velocity.copy(),
            "mode": self.mode,
            "auto_classification": self.auto_classification,
            "step_count": self.step_count,
            "step_length": self.step_length,
            "total_distance": self.total_distance,
            "features": self.features,
            "sample_rate": self.sample_rate,
            "zupt_active": self._zupt.active,
            "vertical_detection": {
                "enabled": self.config.vertical.enabled and self._tracker is not None,
                "orientation_confidence": self.last_orientation_confidence,
                "fallback_active": fallback_active,
                "last_vertical_peak": self._vertical.last_peak,
                "method": self.last_detection_path,
                "stats": self._vertical.stats(),
            },
            "physiological": self._guard.metrics(self.mode),
        }

    @property
    def last_rejection_reason(self) -> Optional[str]:
        return self._guard.last_rejection_reason

    def buffer_lengths(self) -> dict:
        """Fill level of every window (all zero after reset())."""
        return {
            "acceleration": len(self._acc),
            "gyroscope": len(self._gyro),
            "magnetometer": len(self._mag),
            "history": len(self._history),
            "vertical": len(self._vertical),
        }
