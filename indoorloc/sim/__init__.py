"""
Synthetic sensor streams.

Modules:
    walk: quiet baselines, step-pulse trains, corridor loops and heading
          ramps at a fixed sample rate
    dataset: loading of walk datasets written as text files
"""

from indoorloc.sim.dataset import load_walk_dataset
from indoorloc.sim.walk import (
    GRAVITY,
    WalkStream,
    add_pulses,
    corridor_walk,
    heading_ramp,
    pulse_walk,
    quiet_baseline,
    to_samples,
)

__all__ = [
    "GRAVITY",
    "WalkStream",
    "add_pulses",
    "corridor_walk",
    "heading_ramp",
    "load_walk_dataset",
    "pulse_walk",
    "quiet_baseline",
    "to_samples",
]
