"""
Pipeline orchestration.

Threads samples through the attitude tracker and the PDR engine and turns
their updates into event records:
    - Pipeline: push-driven orchestrator
    - StepDetected, ModeChanged, PoseUpdated, Recalibrated: event records
    - CallbackAdapter: forwards events to plain callbacks
"""

from indoorloc.fusion.events import (
    CallbackAdapter,
    Event,
    ModeChanged,
    PoseUpdated,
    Recalibrated,
    StepDetected,
    event_to_dict,
)
from indoorloc.fusion.pipeline import Pipeline

__all__ = [
    "CallbackAdapter",
    "Event",
    "ModeChanged",
    "PoseUpdated",
    "Recalibrated",
    "StepDetected",
    "event_to_dict",
    "Pipeline",
]
