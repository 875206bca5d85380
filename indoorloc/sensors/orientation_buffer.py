"""
Hybrid orientation buffer for splitting batched pedometer steps.

OS pedometers report steps in batches ("4 steps between t0 and t1"), while
heading arrives continuously at ~10 Hz. The buffer keeps the recent heading
history so that each step of a batch can be given the heading that was
valid when it was taken.

Headings are stored in degrees in [0, 360). The interpolated heading at an
arbitrary time t is computed as follows:

    1. Find the two stored samples i, i+1 with t_i <= t <= t_{i+1}
    2. Smooth each with a centred circular mean of half-width
       min(2, i, n-1-i), clipped at the ends of the buffer
    3. Interpolate circularly between the two by the time fraction

Times outside the stored range clamp to the nearest end sample.
"""

import logging
from typing import List, Optional

import numpy as np

from indoorloc.config import OrientationBufferConfig
from indoorloc.sensors.types import StepEvent, StepSource
from indoorloc.utils.angles import (
    angle_diff_deg,
    circular_mean_deg,
    circular_median_deg,
    wrap_angle,
    wrap_degrees,
)
from indoorloc.utils.buffers import RingBuffer

logger = logging.getLogger(__name__)


class HybridOrientationBuffer:
    """
    Time-stamped ring of headings with interpolation and batch splitting.

    Args:
        config: Ring capacity, median window and smoothing half-width.

    Example:
        >>> hob = HybridOrientationBuffer()
        >>> for i in range(13):
        ...     hob.push_heading_deg(7.5 * i, 1000.0 + 100.0 * i)
        >>> round(hob.smoothed_heading_at(1150.0), 2)
        11.25
    """

    def __init__(self, config: Optional[OrientationBufferConfig] = None):
        self.config = config or OrientationBufferConfig()
        self._ring: RingBuffer = RingBuffer(self.config.capacity)
        self._median: RingBuffer[float] = RingBuffer(self.config.median_window)

    def configure(self, config: OrientationBufferConfig) -> None:
        """Swap settings; the newest stored headings are kept up to the new capacity."""
        self.config = config
        self._ring = self._ring.resized(config.capacity)
        self._median = self._median.resized(config.median_window)

    def push_heading_deg(self, heading_deg: float, t_ms: float) -> None:
        """Append a heading in degrees. Samples older than the newest are ignored."""
        if self._ring and t_ms <= self._ring.latest()[0]:
            logger.debug("Ignoring out-of-order heading at t=%.1f", t_ms)
            return
        heading = wrap_degrees(heading_deg)
        self._ring.append((float(t_ms), heading))
        self._median.append(heading)

    def push_yaw(self, yaw_rad: float, t_ms: float) -> None:
        """Append a yaw in radians (counter-clockwise from world x)."""
        self.push_heading_deg(float(np.degrees(yaw_rad)), t_ms)

    @property
    def current_heading_deg(self) -> Optional[float]:
        """Median of the newest raw headings, or None when empty."""
        if not self._median:
            return None
        return circular_median_deg(self._median.to_list())

    def _smoothed(self, headings: np.ndarray, i: int) -> float:
        n = headings.size
        half = min(self.config.smoothing_half_width, i, n - 1 - i)
        return circular_mean_deg(headings[i - half:i + half + 1])

    def smoothed_heading_at(self, t_ms: float) -> Optional[float]:
        """Interpolated, smoothed heading in [0, 360) at t_ms, or None if empty."""
        if not self._ring:
            return None
        entries = self._ring.to_list()
        times = np.array([t for t, _ in entries])
        headings = np.array([h for _, h in entries])
        n = times.size

        if n == 1 or t_ms <= times[0]:
            return self._smoothed(headings, 0)
        if t_ms >= times[-1]:
            return self._smoothed(headings, n - 1)

        i = int(np.searchsorted(times, t_ms, side="right")) - 1
        a = self._smoothed(headings, i)
        b = self._smoothed(headings, i + 1)
        frac = (t_ms - times[i]) / (times[i + 1] - times[i])
        return wrap_degrees(a + frac * angle_diff_deg(b, a))

    def smoothed_yaw_at(self, t_ms: float) -> Optional[float]:
        """smoothed_heading_at() as a yaw in radians, [-π, π]."""
        heading = self.smoothed_heading_at(t_ms)
        if heading is None:
            return None
        return wrap_angle(np.radians(heading))

    def split_batch(
        self,
        step_count: int,
        step_length: float,
        t_start_ms: float,
        t_end_ms: float,
        default_yaw: float = 0.0,
    ) -> List[StepEvent]:
        """
        Split a pedometer batch into individual steps.

        Step i (0-based) is placed at the midpoint of its sub-interval,

            t_i = t0 + (i + 0.5) · (t1 - t0) / N

        and displaced along the interpolated yaw at t_i. ``default_yaw`` is
        used while the buffer is empty.

        Returns:
            N step events in ascending time, indexed 1..N within the batch.

        Raises:
            ValueError: If N is negative, the length is not positive or
                t1 <= t0.
        """
        if step_count < 0:
            raise ValueError(f"step_count must be non-negative, got {step_count}")
        if not step_length > 0:
            raise ValueError(f"step_length must be positive, got {step_length}")
        if not t_end_ms > t_start_ms:
            raise ValueError(f"t_end_ms ({t_end_ms}) must be after t_start_ms ({t_start_ms})")

        spacing = (t_end_ms - t_start_ms) / step_count if step_count else 0.0
        steps = []
        for i in range(step_count):
            t = t_start_ms + (i + 0.5) * spacing
            yaw = self.smoothed_yaw_at(t)
            if yaw is None:
                yaw = wrap_angle(default_yaw)
            steps.append(
                StepEvent(
                    index=i + 1,
                    length_m=float(step_length),
                    dx=float(step_length * np.cos(yaw)),
                    dy=float(step_length * np.sin(yaw)),
                    t_ms=float(t),
                    confidence=1.0,
                    source=StepSource.NATIVE,
                    yaw=float(yaw),
                )
            )
        return steps

    def reset(self) -> None:
        self._ring.clear()
        self._median.clear()

    def __len__(self) -> int:
        return len(self._ring)
