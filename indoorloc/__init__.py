"""
indoorloc: real-time indoor pedestrian localization.

Sub-packages:
    utils: angles, bounded buffers, signal filters, logging helpers
    coords: quaternion and rotation-matrix algebra
    sensors: attitude tracking, step detection, activity, PDR, heading
    fusion: the push-driven Pipeline and its event records
    sim: deterministic synthetic sensor streams
"""

__version__ = "0.1.0"
