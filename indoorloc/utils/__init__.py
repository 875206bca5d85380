"""
Utility functions for the localization pipeline.

This module provides common helpers used across the codebase: angle
wrapping and circular statistics, bounded buffers, signal filters with the
adaptive peak detector, and logging helpers.
"""

from .angles import (
    wrap_angle,
    wrap_angle_array,
    angle_diff,
    wrap_degrees,
    angle_diff_deg,
    circular_mean,
    circular_mean_deg,
    circular_median_deg,
)
from .buffers import RingBuffer, TimeWindowBuffer
from .filters import (
    PeakScan,
    variance,
    trailing_mean,
    detrend,
    adaptive_threshold,
    detect_peaks,
)
from .log import RateLimitedLogger, setup_logging

__all__ = [
    'wrap_angle',
    'wrap_angle_array',
    'angle_diff',
    'wrap_degrees',
    'angle_diff_deg',
    'circular_mean',
    'circular_mean_deg',
    'circular_median_deg',
    'RingBuffer',
    'TimeWindowBuffer',
    'PeakScan',
    'variance',
    'trailing_mean',
    'detrend',
    'adaptive_threshold',
    'detect_peaks',
    'RateLimitedLogger',
    'setup_logging',
]
