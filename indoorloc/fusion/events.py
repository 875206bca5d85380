"""Event records produced by the pipeline, and a callback adapter.

Pipeline.push() returns a list of events for each sample, in this order:
Recalibrated, ModeChanged, StepDetected, PoseUpdated. Callers can dispatch
them directly or hand them to CallbackAdapter, which forwards each event to
an optional plain callback.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

import numpy as np

from indoorloc.sensors.types import (
    ActivityFeatures,
    ActivityMode,
    Pose,
    RecalibrationSnapshot,
    StepEvent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepDetected:
    step: StepEvent


@dataclass(frozen=True)
class ModeChanged:
    previous: ActivityMode
    mode: ActivityMode
    features: ActivityFeatures
    t_ms: float


@dataclass(frozen=True)
class PoseUpdated:
    pose: Pose
    mode: ActivityMode
    t_ms: float


@dataclass(frozen=True)
class Recalibrated:
    snapshot: RecalibrationSnapshot


Event = Union[StepDetected, ModeChanged, PoseUpdated, Recalibrated]


def event_to_dict(event: Event) -> dict:
    """JSON-serializable form of an event, tagged with its type name."""
    if isinstance(event, StepDetected):
        s = event.step
        return {
            "type": "step",
            "t_ms": s.t_ms,
            "index": s.index,
            "length_m": s.length_m,
            "dx": s.dx,
            "dy": s.dy,
            "yaw": s.yaw,
            "confidence": s.confidence,
            "source": s.source.value,
        }
    if isinstance(event, ModeChanged):
        f = event.features
        return {
            "type": "mode",
            "t_ms": event.t_ms,
            "previous": event.previous.value,
            "mode": event.mode.value,
            "features": {
                "variance": f.variance,
                "frequency": f.frequency,
                "amplitude": f.amplitude,
                "pitch": f.pitch,
            },
        }
    if isinstance(event, PoseUpdated):
        p = event.pose
        return {
            "type": "pose",
            "t_ms": event.t_ms,
            "x": p.x,
            "y": p.y,
            "z": p.z,
            "yaw": p.yaw,
            "mode": event.mode.value,
        }
    if isinstance(event, Recalibrated):
        snap = event.snapshot
        return {
            "type": "recalibration",
            "t_ms": snap.t_ms,
            "automatic": snap.automatic,
            "device_to_body": np.asarray(snap.device_to_body).tolist(),
            "mean_gravity": np.asarray(snap.mean_gravity).tolist(),
        }
    raise TypeError(f"Unknown event type {type(event).__name__}")


class CallbackAdapter:
    """
    Forwards events to plain callbacks.

    Callback signatures:
        on_step_detected(index, length_m, dx, dy, t_ms, source, confidence)
        on_mode_changed(mode, features)
        on_pose_update(x, y, yaw, mode)
        on_recalibration(device_to_body, t_ms, automatic)

    An exception raised by a callback is logged and does not interrupt the
    remaining dispatch.
    """

    def __init__(
        self,
        on_step_detected: Optional[Callable] = None,
        on_mode_changed: Optional[Callable] = None,
        on_pose_update: Optional[Callable] = None,
        on_recalibration: Optional[Callable] = None,
    ):
        self.on_step_detected = on_step_detected
        self.on_mode_changed = on_mode_changed
        self.on_pose_update = on_pose_update
        self.on_recalibration = on_recalibration

    def dispatch(self, events: Iterable[Event]) -> None:
        for event in events:
            try:
                self._dispatch_one(event)
            except Exception:
                logger.exception("Callback failed for %s", type(event).__name__)

    def _dispatch_one(self, event: Event) -> None:
        if isinstance(event, StepDetected):
            if self.on_step_detected is not None:
                s = event.step
                self.on_step_detected(s.index, s.length_m, s.dx, s.dy, s.t_ms, s.source, s.confidence)
        elif isinstance(event, ModeChanged):
            if self.on_mode_changed is not None:
                self.on_mode_changed(event.mode, event.features)
        elif isinstance(event, PoseUpdated):
            if self.on_pose_update is not None:
                p = event.pose
                self.on_pose_update(p.x, p.y, p.yaw, event.mode)
        elif isinstance(event, Recalibrated):
            if self.on_recalibration is not None:
                snap = event.snapshot
                self.on_recalibration(snap.device_to_body, snap.t_ms, snap.automatic)
