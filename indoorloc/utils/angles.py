"""
Angle wrapping and circular statistics.

Provides functions for keeping angular quantities within proper bounds
([-π, π] for yaw in radians, [0°, 360°) for headings in degrees) and for
averaging angles without the wraparound bias of an arithmetic mean.

Critical for:
- Pose yaw after gyro integration
- Heading filtering and segment stabilization
- Per-step yaw interpolation over batched pedometer intervals
"""

import numpy as np
from scipy.stats import circmean
from typing import Sequence, Union


def wrap_angle(angle: float) -> float:
    """
    Wrap angle to [-π, π] range.

    Without wrapping, yaw values near ±180° produce large incorrect
    differences (e.g., -179° vs +179° = 358° instead of 2°).

    Args:
        angle: Angle in radians (can be any value)

    Returns:
        Wrapped angle in range [-π, π]

    Example:
        >>> wrap_angle(3.5 * np.pi)  # 630° -> -90°
        -1.5707963267948966
    """
    return float(np.arctan2(np.sin(angle), np.cos(angle)))


def wrap_angle_array(angles: np.ndarray) -> np.ndarray:
    """
    Wrap array of angles to [-π, π] range.

    Vectorized version of wrap_angle().
    """
    return np.arctan2(np.sin(angles), np.cos(angles))


def angle_diff(angle1: Union[float, np.ndarray],
               angle2: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Compute the shortest angular difference between two angles.

    Returns angle1 - angle2, wrapped to [-π, π].

    Args:
        angle1: First angle in radians
        angle2: Second angle in radians

    Returns:
        Shortest signed difference angle1 - angle2 in [-π, π]

    Example:
        >>> angle_diff(np.pi - 0.1, -np.pi + 0.1)  # Nearly opposite
        -0.2
    """
    if isinstance(angle1, np.ndarray) or isinstance(angle2, np.ndarray):
        return wrap_angle_array(np.asarray(angle1) - np.asarray(angle2))
    else:
        return wrap_angle(angle1 - angle2)


def wrap_degrees(heading_deg: float) -> float:
    """Wrap a heading in degrees to [0, 360)."""
    wrapped = float(np.mod(heading_deg, 360.0))
    # np.mod can return 360.0 for tiny negative inputs
    return 0.0 if wrapped >= 360.0 else wrapped


def angle_diff_deg(heading1: float, heading2: float) -> float:
    """Shortest signed difference heading1 - heading2 in degrees, in [-180, 180)."""
    return float(np.mod(heading1 - heading2 + 180.0, 360.0) - 180.0)


def circular_mean(angles: Union[Sequence[float], np.ndarray]) -> float:
    """
    Circular (trigonometric) mean of angles in radians.

    Each angle is mapped to (sin, cos), the components are averaged and the
    mean direction is recovered with atan2.

    Args:
        angles: Angles in radians, shape (N,) with N >= 1.

    Returns:
        Mean direction in [-π, π].

    Raises:
        ValueError: If angles is empty.

    Example:
        >>> circular_mean([np.deg2rad(350.0), np.deg2rad(10.0)])  # -> 0.0
    """
    angles = np.asarray(angles, dtype=float)
    if angles.size == 0:
        raise ValueError("circular_mean requires at least one angle")
    return wrap_angle(circmean(angles, high=np.pi, low=-np.pi))


def circular_mean_deg(headings: Union[Sequence[float], np.ndarray]) -> float:
    """Circular mean of headings in degrees, returned in [0, 360)."""
    headings = np.asarray(headings, dtype=float)
    if headings.size == 0:
        raise ValueError("circular_mean_deg requires at least one heading")
    return wrap_degrees(circmean(headings, high=360.0, low=0.0))


def circular_median_deg(headings: Union[Sequence[float], np.ndarray]) -> float:
    """
    Median of headings in degrees, robust to the 0°/360° wraparound.

    The headings are unwrapped around their circular mean, the ordinary
    median of the unwrapped values is taken, and the result is wrapped back
    to [0, 360).

    Args:
        headings: Headings in degrees, shape (N,) with N >= 1.

    Returns:
        Median heading in [0, 360).

    Example:
        >>> circular_median_deg([358.0, 359.0, 1.0, 2.0, 3.0])  # -> 1.0
    """
    headings = np.asarray(headings, dtype=float)
    if headings.size == 0:
        raise ValueError("circular_median_deg requires at least one heading")
    center = circular_mean_deg(headings)
    offsets = np.mod(headings - center + 180.0, 360.0) - 180.0
    return wrap_degrees(center + float(np.median(offsets)))
