"""
Real-time localization pipeline.

The Pipeline owns one AttitudeTracker, one PedestrianDeadReckoning engine,
one HybridOrientationBuffer and one HeadingStabilizer, and threads every
sample through them:

    sample -> validity / ordering checks
           -> AttitudeTracker.update()          (q, stability, snapshot)
           -> PedestrianDeadReckoning.process() (mode, step, pose)
           -> HybridOrientationBuffer           (yaw history at ~10 Hz)
           -> [Recalibrated, ModeChanged, StepDetected, PoseUpdated]

Everything runs synchronously on the caller's thread and no locks are
taken. Callers reading state from another thread must hand samples and
snapshots over through their own queue or lock; state() and
attitude_status() return copies.

Example:
    >>> pipeline = Pipeline()
    >>> pipeline.initialize(user_height=1.75)
    >>> events = pipeline.push(Sample(0.0, [0.0, 0.0, 9.81], [0.0, 0.0, 0.0]))
"""

import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from indoorloc.config import PipelineConfig
from indoorloc.fusion.events import (
    CallbackAdapter,
    Event,
    ModeChanged,
    PoseUpdated,
    Recalibrated,
    StepDetected,
)
from indoorloc.sensors.attitude import AttitudeTracker
from indoorloc.sensors.heading import HeadingStabilizer
from indoorloc.sensors.orientation_buffer import HybridOrientationBuffer
from indoorloc.sensors.pdr import PedestrianDeadReckoning
from indoorloc.sensors.types import AttitudeStatus, NativeStepBatch, Pose, Sample
from indoorloc.utils.log import RateLimitedLogger

logger = logging.getLogger(__name__)


class Pipeline:
    """
    Push-driven sensor fusion pipeline.

    Args:
        config: Pipeline configuration (defaults when omitted).
        tracker: Attitude tracker to use instead of a freshly built one.
        callbacks: Optional adapter receiving every event list.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        tracker: Optional[AttitudeTracker] = None,
        callbacks: Optional[CallbackAdapter] = None,
    ):
        self.config = config or PipelineConfig()
        cfg = self.config
        self.tracker = tracker or AttitudeTracker(cfg.attitude, cfg.limits)
        self.pdr = PedestrianDeadReckoning(cfg.pdr, cfg.limits, cfg.log_interval_ms)
        self.pdr.set_attitude_tracker(self.tracker)
        self.orientation_buffer = HybridOrientationBuffer(cfg.orientation_buffer)
        self.heading = HeadingStabilizer(cfg.heading, cfg.log_interval_ms)
        self.callbacks = callbacks
        self._warn = RateLimitedLogger(logger, cfg.log_interval_ms)
        self._reset_stream_state()

    def _reset_stream_state(self) -> None:
        self._last_t: Optional[float] = None
        self._last_buffer_push: Optional[float] = None
        self._external_heading = False
        self._stats = {
            "processed": 0,
            "dropped_invalid": 0,
            "dropped_stale": 0,
            "dropped_duplicate": 0,
        }

    # ------------------------------------------------------------------
    # Configuration and lifecycle
    # ------------------------------------------------------------------

    def configure(self, config: Union[PipelineConfig, Mapping]) -> None:
        """
        Replace the configuration.

        A mapping is parsed with PipelineConfig.from_dict(). If anything
        fails the previous configuration stays in effect and the error
        propagates.
        """
        if isinstance(config, Mapping):
            config = PipelineConfig.from_dict(config)
        if not isinstance(config, PipelineConfig):
            raise TypeError(f"Expected PipelineConfig or mapping, got {type(config).__name__}")
        previous = self.config
        try:
            self._apply(config)
        except ValueError:
            self._apply(previous)
            raise
        logger.info("Pipeline configuration updated")

    def _apply(self, config: PipelineConfig) -> None:
        self.tracker.limits = config.limits
        self.tracker.configure(config.attitude)
        self.pdr.limits = config.limits
        self.pdr.configure(config.pdr)
        self.heading.configure(config.heading)
        self.orientation_buffer.configure(config.orientation_buffer)
        for warn in (self._warn, self.pdr._warn, self.heading._warn):
            warn.interval_ms = config.log_interval_ms
        self.config = config

    def initialize(self, user_height: Optional[float] = None) -> None:
        """Set the user height used for step length."""
        self.pdr.initialize(user_height)

    def reset(self, position: Optional[Sequence[float]] = None, yaw: Optional[float] = None) -> None:
        """Clear every buffer and counter; the attitude returns to identity."""
        self.tracker.reset()
        self.pdr.reset(position, yaw)
        self.orientation_buffer.reset()
        self.heading.reset()
        self._warn.reset()
        self._reset_stream_state()

    def set_manual_mode(self, mode) -> List[Event]:
        """Force an activity mode; returns the ModeChanged event, if any."""
        previous = self.pdr.mode
        events: List[Event] = []
        if self.pdr.set_manual_mode(mode):
            t = self._last_t if self._last_t is not None else 0.0
            events.append(ModeChanged(previous, self.pdr.mode, self.pdr.features, t))
        self._dispatch(events)
        return events

    def set_auto_classification(self, enabled: bool = True) -> None:
        self.pdr.set_auto_classification(enabled)

    def force_recalibration(self, accel, gyro) -> List[Event]:
        snapshot = self.tracker.force_recalibration(accel, gyro, self._last_t)
        events: List[Event] = [Recalibrated(snapshot)] if snapshot is not None else []
        self._dispatch(events)
        return events

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def push(self, sample: Sample) -> List[Event]:
        """
        Process one sample.

        Invalid samples, duplicates (same timestamp as the previous sample)
        and out-of-order samples are dropped and counted.

        Returns:
            Events produced by this sample, in emission order.
        """
        t = sample.t_ms
        if not sample.is_valid(self.config.limits):
            self._stats["dropped_invalid"] += 1
            self._warn.warning(
                "invalid", t if np.isfinite(t) else self._last_t,
                "Dropping invalid sample at t=%s", t,
            )
            return []
        if self._last_t is not None:
            if t == self._last_t:
                self._stats["dropped_duplicate"] += 1
                logger.debug("Ignoring duplicate sample at t=%.1f", t)
                return []
            if t < self._last_t:
                self._stats["dropped_stale"] += 1
                self._warn.warning(
                    "stale", self._last_t,
                    "Dropping out-of-order sample at t=%.1f (last %.1f)", t, self._last_t,
                )
                return []
        self._last_t = t
        self._stats["processed"] += 1

        events: List[Event] = []
        snapshot = self.tracker.update(sample)
        if snapshot is not None:
            events.append(Recalibrated(snapshot))

        update = self.pdr.process(sample, self.tracker.status())
        if update.mode_changed:
            events.append(ModeChanged(update.previous_mode, update.mode, update.features, t))
        if update.step is not None:
            self.heading.note_step()
            events.append(StepDetected(update.step))
        if update.pose_changed:
            events.append(PoseUpdated(self.pdr.pose(), self.pdr.mode, t))

        if not self._external_heading:
            interval = self.config.orientation_buffer.push_interval_ms
            if self._last_buffer_push is None or t - self._last_buffer_push >= interval:
                self.orientation_buffer.push_yaw(self.pdr.yaw, t)
                self._last_buffer_push = t

        self._dispatch(events)
        return events

    def push_many(self, samples: Iterable[Sample]) -> List[Event]:
        events: List[Event] = []
        for sample in samples:
            events.extend(self.push(sample))
        return events

    def push_heading(
        self, yaw: float, t_ms: float, accuracy_deg: Optional[float] = None
    ) -> Optional[float]:
        """
        Feed an external heading reading (yaw in radians).

        The raw reading goes to the orientation buffer; the stabilized
        heading replaces the PDR yaw. From the first call on the pipeline
        stops feeding the buffer from its own yaw.

        Returns:
            Stabilized yaw in radians, or None if the reading was rejected.
        """
        self._external_heading = True
        self.orientation_buffer.push_yaw(yaw, t_ms)
        heading_deg = self.heading.update(float(np.degrees(yaw)), t_ms, accuracy_deg)
        if heading_deg is None:
            return None
        self.pdr.set_yaw(np.radians(heading_deg))
        return self.pdr.yaw

    def push_native_batch(self, batch: NativeStepBatch) -> List[Event]:
        """
        Split a pedometer batch into individual steps and apply them.

        Returns:
            StepDetected / PoseUpdated pairs in ascending step time.
        """
        steps = self.orientation_buffer.split_batch(
            batch.step_count,
            batch.step_length,
            batch.t_start_ms,
            batch.t_end_ms,
            default_yaw=self.pdr.yaw,
        )
        events: List[Event] = []
        for step in steps:
            applied = self.pdr.apply_external_step(step.t_ms, step.length_m, step.yaw, step.confidence)
            self.heading.note_step()
            events.append(StepDetected(applied))
            events.append(PoseUpdated(self.pdr.pose(), self.pdr.mode, step.t_ms))
        if batch.total_steps is not None and batch.total_steps != self.pdr.step_count:
            logger.debug(
                "Pedometer total %d differs from pipeline step count %d",
                batch.total_steps, self.pdr.step_count,
            )
        self._dispatch(events)
        return events

    def _dispatch(self, events: List[Event]) -> None:
        if self.callbacks is not None and events:
            self.callbacks.dispatch(events)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def attitude_status(self) -> AttitudeStatus:
        return self.tracker.status()

    def state(self) -> dict:
        return self.pdr.state()

    def pose(self) -> Pose:
        return self.pdr.pose()

    @property
    def step_count(self) -> int:
        return self.pdr.step_count

    def stats(self) -> dict:
        """Processed / dropped sample counters."""
        return dict(self._stats)
