"""
Unit tests for indoorloc/sensors/orientation_buffer.py.

Tests cover:
    - Smoothed, interpolated heading lookups (ramp and wraparound)
    - Clamping outside the stored range
    - Out-of-order pushes and the median of recent headings
    - Splitting native pedometer batches into timed steps

Run with: pytest tests/core/sensors/test_orientation_buffer.py -v
"""

import unittest

import numpy as np
import pytest

from indoorloc.config import OrientationBufferConfig
from indoorloc.sensors.orientation_buffer import HybridOrientationBuffer
from indoorloc.sensors.types import StepSource
from indoorloc.sim.walk import heading_ramp


def ramp_buffer() -> HybridOrientationBuffer:
    """0° -> 90° between t=1000 and t=2200 ms at 10 Hz."""
    hob = HybridOrientationBuffer()
    t, yaw = heading_ramp(1000.0, 2200.0, 0.0, 90.0)
    for ti, yi in zip(t, yaw):
        hob.push_yaw(yi, ti)
    return hob


class TestHeadingLookup(unittest.TestCase):
    """Test suite for smoothed_heading_at()."""

    def test_empty(self) -> None:
        hob = HybridOrientationBuffer()
        assert hob.smoothed_heading_at(0.0) is None
        assert hob.smoothed_yaw_at(0.0) is None
        assert hob.current_heading_deg is None

    def test_ramp_interpolation(self) -> None:
        """A linear ramp is reproduced between samples."""
        hob = ramp_buffer()
        assert len(hob) == 13
        assert hob.smoothed_heading_at(1150.0) == pytest.approx(11.25)
        assert hob.smoothed_heading_at(1600.0) == pytest.approx(45.0)
        assert hob.smoothed_heading_at(2050.0) == pytest.approx(78.75)

    def test_clamps_outside_range(self) -> None:
        hob = ramp_buffer()
        assert hob.smoothed_heading_at(0.0) == pytest.approx(0.0)
        assert hob.smoothed_heading_at(5000.0) == pytest.approx(90.0)

    def test_wraparound(self) -> None:
        """Interpolating from 350° to 10° passes through north."""
        hob = HybridOrientationBuffer()
        hob.push_heading_deg(350.0, 0.0)
        hob.push_heading_deg(10.0, 100.0)
        h = hob.smoothed_heading_at(50.0)
        assert min(h, 360.0 - h) < 1e-9
        assert hob.smoothed_heading_at(75.0) == pytest.approx(5.0)

    def test_yaw_in_radians(self) -> None:
        hob = ramp_buffer()
        assert hob.smoothed_yaw_at(1600.0) == pytest.approx(np.pi / 4)

    def test_out_of_order_ignored(self) -> None:
        hob = ramp_buffer()
        hob.push_heading_deg(180.0, 2200.0)
        hob.push_heading_deg(180.0, 1500.0)
        assert len(hob) == 13

    def test_current_heading_is_median(self) -> None:
        hob = ramp_buffer()
        assert hob.current_heading_deg == pytest.approx(75.0)

    def test_capacity(self) -> None:
        hob = HybridOrientationBuffer(OrientationBufferConfig(capacity=5))
        for i in range(20):
            hob.push_heading_deg(float(i), float(i))
        assert len(hob) == 5
        hob.reset()
        assert len(hob) == 0


class TestSplitBatch(unittest.TestCase):
    """Test suite for split_batch()."""

    def test_steps_follow_ramp(self) -> None:
        """Four steps take the ramp heading at their sub-interval midpoints."""
        steps = ramp_buffer().split_batch(4, 0.75, 1000.0, 2200.0)
        np.testing.assert_allclose([s.t_ms for s in steps], [1150.0, 1450.0, 1750.0, 2050.0])
        np.testing.assert_allclose(
            np.degrees([s.yaw for s in steps]), [11.25, 33.75, 56.25, 78.75], atol=1e-9
        )
        assert [s.index for s in steps] == [1, 2, 3, 4]
        assert all(s.source == StepSource.NATIVE for s in steps)
        dist = sum(np.hypot(s.dx, s.dy) for s in steps)
        assert dist == pytest.approx(3.0)

    def test_empty_buffer_uses_default_yaw(self) -> None:
        steps = HybridOrientationBuffer().split_batch(2, 0.7, 0.0, 1000.0, default_yaw=np.pi)
        assert all(abs(s.yaw) == pytest.approx(np.pi) for s in steps)
        assert steps[0].dx == pytest.approx(-0.7)

    def test_zero_steps(self) -> None:
        assert ramp_buffer().split_batch(0, 0.7, 1000.0, 2000.0) == []

    def test_validation(self) -> None:
        hob = HybridOrientationBuffer()
        with pytest.raises(ValueError, match="step_count"):
            hob.split_batch(-1, 0.7, 0.0, 1.0)
        with pytest.raises(ValueError, match="step_length"):
            hob.split_batch(1, 0.0, 0.0, 1.0)
        with pytest.raises(ValueError, match="must be after"):
            hob.split_batch(1, 0.7, 5.0, 5.0)


if __name__ == "__main__":
    unittest.main()
