"""
Motion constraints applied by the PDR engine.

This module implements:
    - ZuptDetector: windowed zero-velocity detector on the accelerometer
      norm; while active the PDR damps its velocity state
    - PhysiologicalGuard: step-rate caps and gyroscope confirmation that
      reject implausible step candidates once the warm-up is over

Both are stateful and evaluated once per sample. Every time comparison
uses sample timestamps.
"""

import logging
from typing import List, Optional

import numpy as np

from indoorloc.config import PhysiologicalConfig
from indoorloc.sensors.types import ActivityMode
from indoorloc.utils.buffers import RingBuffer, TimeWindowBuffer
from indoorloc.utils.filters import variance

logger = logging.getLogger(__name__)

REJECT_FREQUENCY = "step_frequency"
REJECT_GYRO = "gyro_confirmation"


class ZuptDetector:
    """
    Zero-velocity detector.

    The device is declared at rest once the variance of the last
    ``window`` accelerometer norms has stayed below ``threshold`` for at
    least ``duration_ms``.

    Args:
        threshold: Variance cap, m²/s⁴.
        duration_ms: Required quiet time.
        window: Number of norms in the variance test.
    """

    def __init__(self, threshold: float = 0.1, duration_ms: float = 300.0, window: int = 5):
        self.threshold = threshold
        self.duration_ms = duration_ms
        self._norms: RingBuffer[float] = RingBuffer(window)
        self._quiet_since: Optional[float] = None
        self.active = False

    def update(self, t_ms: float, accel_norm: float) -> bool:
        self._norms.append(float(accel_norm))
        quiet = self._norms.is_full() and variance(self._norms.to_list()) < self.threshold
        if not quiet:
            self._quiet_since = None
            self.active = False
            return False
        if self._quiet_since is None:
            self._quiet_since = t_ms
        self.active = t_ms - self._quiet_since >= self.duration_ms
        return self.active

    def reset(self) -> None:
        self._norms.clear()
        self._quiet_since = None
        self.active = False


class PhysiologicalGuard:
    """
    Plausibility checks on step candidates.

    After ``warmup_steps`` accepted steps every candidate must satisfy:
        - the step rate over the last ``frequency_window_steps`` step times
          (the candidate included) stays below the cap of the current mode
        - with gyro confirmation enabled, the last
          ``gyro_confirmation_samples`` gyro norms show activity: a maximum
          above the threshold or a mean above half of it

    Gyro confirmation passes while fewer than ``gyro_min_samples`` gyro
    norms are buffered.
    """

    def __init__(self, config: Optional[PhysiologicalConfig] = None):
        self.config = config or PhysiologicalConfig()
        self._steps = TimeWindowBuffer(self.config.step_history_ms)
        self._gyro: RingBuffer[float] = RingBuffer(self.config.gyro_buffer_size)
        self.last_rejection_reason: Optional[str] = None

    def push_gyro(self, gyro_norm: float) -> None:
        self._gyro.append(float(gyro_norm))

    def max_frequency(self, mode: ActivityMode) -> float:
        cfg = self.config
        if mode == ActivityMode.RUNNING:
            return cfg.max_step_frequency_running
        if mode == ActivityMode.STATIONARY:
            return cfg.max_step_frequency_stationary
        return cfg.max_step_frequency_walking

    @staticmethod
    def _rate(times: List[float]) -> float:
        if len(times) < 2:
            return 0.0
        span_s = (times[-1] - times[0]) / 1000.0
        if span_s <= 0.0:
            return float("inf")
        return (len(times) - 1) / span_s

    def current_frequency(self) -> float:
        """Step rate over the most recent accepted steps, Hz."""
        n = self.config.frequency_window_steps
        return self._rate(list(self._steps.timestamps(n)))

    def gyro_activity(self) -> float:
        """Largest of the recent gyro norms used for confirmation, rad/s."""
        recent = self._gyro.last(self.config.gyro_confirmation_samples)
        return float(max(recent)) if recent else 0.0

    def check(self, t_ms: float, mode: ActivityMode, step_count: int) -> Optional[str]:
        """
        Evaluate a candidate at ``t_ms``.

        Returns:
            None if the candidate is accepted, otherwise the rejection
            reason (REJECT_FREQUENCY or REJECT_GYRO).
        """
        cfg = self.config
        if step_count < cfg.warmup_steps:
            return None

        times = list(self._steps.timestamps(cfg.frequency_window_steps - 1)) + [t_ms]
        rate = self._rate(times)
        cap = self.max_frequency(mode)
        if rate > cap:
            self.last_rejection_reason = REJECT_FREQUENCY
            logger.info(
                "Step at t=%.1f rejected (%s): %.2f Hz exceeds %.2f Hz cap for %s",
                t_ms, REJECT_FREQUENCY, rate, cap, mode.value,
            )
            return REJECT_FREQUENCY

        if cfg.gyro_confirmation_enabled and len(self._gyro) >= cfg.gyro_min_samples:
            recent = np.asarray(self._gyro.last(cfg.gyro_confirmation_samples), dtype=float)
            threshold = cfg.gyro_confirmation_threshold
            if not (recent.max() > threshold or recent.mean() > threshold / 2.0):
                self.last_rejection_reason = REJECT_GYRO
                logger.info(
                    "Step at t=%.1f rejected (%s): gyro max %.3f rad/s, mean %.3f rad/s",
                    t_ms, REJECT_GYRO, recent.max(), recent.mean(),
                )
                return REJECT_GYRO
        return None

    def record(self, t_ms: float) -> None:
        self._steps.append(t_ms, t_ms)

    def metrics(self, mode: ActivityMode) -> dict:
        return {
            "current_frequency": self.current_frequency(),
            "max_allowed_frequency": self.max_frequency(mode),
            "step_history_length": len(self._steps),
            "gyro_buffer_length": len(self._gyro),
            "last_gyro_activity": self.gyro_activity(),
            "last_rejection_reason": self.last_rejection_reason,
        }

    def reset(self) -> None:
        self._steps.clear()
        self._gyro.clear()
        self.last_rejection_reason = None
