"""
Heading filter and segment stabilizer for an external heading source.

Readings (degrees, with an optional accuracy estimate) pass through:

    1. Quality gate: readings whose accuracy is worse than 15° are
       rejected; after 5 consecutive rejections the median window is
       truncated and the next good reading becomes the new reference
    2. Jump gate: readings more than 45° away from the last good one are
       rejected (and count towards the consecutive limit)
    3. Median of the last 5 readings (wraparound safe)
    4. EMA with α = 0.02, halved for excellent accuracy (<= 5°) and
       doubled for poor accuracy (> 10°)
    5. Segment logic: the published heading is the committed segment
       heading. A deviation of the EMA above 10° must persist for 200 ms
       and at least 3 steps must have been taken in the current segment
       before the segment moves. Deviations below 3° cancel a pending
       change.
"""

import logging
from typing import Optional

from indoorloc.config import HeadingFilterConfig
from indoorloc.utils.angles import angle_diff_deg, circular_median_deg, wrap_degrees
from indoorloc.utils.buffers import RingBuffer
from indoorloc.utils.log import RateLimitedLogger

logger = logging.getLogger(__name__)


class HeadingStabilizer:
    """Filters raw headings and publishes a segment-stabilized heading."""

    def __init__(self, config: Optional[HeadingFilterConfig] = None, log_interval_ms: float = 5000.0):
        self.config = config or HeadingFilterConfig()
        self._warn = RateLimitedLogger(logger, log_interval_ms)
        self._median: RingBuffer[float] = RingBuffer(self.config.median_window)
        self.reset()

    def configure(self, config: HeadingFilterConfig) -> None:
        """Swap settings; the median window keeps its newest readings."""
        self.config = config
        self._median = self._median.resized(config.median_window)

    def reset(self) -> None:
        self._median.clear()
        self._warn.reset()
        self._bad_count = 0
        self._last_good: Optional[float] = None
        self.ema: Optional[float] = None
        self.segment: Optional[float] = None
        self.segment_steps = 0
        self._pending_since: Optional[float] = None

    @property
    def heading_deg(self) -> Optional[float]:
        """Published heading in [0, 360), None before the first good reading."""
        return self.segment if self.segment is not None else self.ema

    def note_step(self) -> None:
        self.segment_steps += 1

    def _reject(self, t_ms: float, reason: str, value: float) -> None:
        cfg = self.config
        self._bad_count += 1
        self._warn.warning(
            reason, t_ms, "Heading reading rejected at t=%.1f (%s: %.1f)", t_ms, reason, value
        )
        if self._bad_count >= cfg.max_consecutive_bad:
            last = self._median.last(1)
            self._median.clear()
            for h in last:
                self._median.append(h)
            self._last_good = None
            self._bad_count = 0

    def update(
        self, heading_deg: float, t_ms: float, accuracy_deg: Optional[float] = None
    ) -> Optional[float]:
        """
        Feed one reading.

        Returns:
            The published heading after this reading, or None if the
            reading was rejected.
        """
        cfg = self.config
        heading = wrap_degrees(heading_deg)
        if accuracy_deg is not None and accuracy_deg > cfg.max_accuracy_deg:
            self._reject(t_ms, "accuracy", accuracy_deg)
            return None
        if self._last_good is not None:
            jump = abs(angle_diff_deg(heading, self._last_good))
            if jump > cfg.max_jump_deg:
                self._reject(t_ms, "jump", jump)
                return None
        self._bad_count = 0
        self._last_good = heading

        self._median.append(heading)
        median = circular_median_deg(self._median.to_list())

        alpha = cfg.alpha
        if accuracy_deg is not None:
            if accuracy_deg <= cfg.excellent_accuracy_deg:
                alpha *= 0.5
            elif accuracy_deg > cfg.poor_accuracy_deg:
                alpha *= 2.0
        if self.ema is None:
            self.ema = median
        else:
            self.ema = wrap_degrees(self.ema + alpha * angle_diff_deg(median, self.ema))

        self._update_segment(t_ms)
        return self.heading_deg

    def _update_segment(self, t_ms: float) -> None:
        cfg = self.config
        if self.segment is None:
            self.segment = self.ema
            self.segment_steps = 0
            return
        deviation = abs(angle_diff_deg(self.ema, self.segment))
        if deviation < cfg.deadband_deg:
            self._pending_since = None
            return
        if deviation <= cfg.segment_change_deg:
            return
        if self._pending_since is None:
            self._pending_since = t_ms
        if t_ms - self._pending_since >= cfg.segment_stable_ms and self.segment_steps >= cfg.segment_min_steps:
            logger.debug("Heading segment %.1f -> %.1f deg", self.segment, self.ema)
            self.segment = self.ema
            self.segment_steps = 0
            self._pending_since = None
